"""Grounded response synthesis: mode-specific prompt contracts and output repair."""

from __future__ import annotations

import logging
from typing import Any

from pydantic.alias_generators import to_camel

from report_explainer.models.rag import Mode, ReportType
from report_explainer.models.schemas import ClinicianAnalysis, PatientAnalysis
from report_explainer.services.fallbacks import safe_response
from report_explainer.services.parsing import MalformedOutputError, extract_json_object
from report_explainer.services.providers import (
    GenerativeModel,
    ImageAttachment,
    ProviderError,
)

logger = logging.getLogger(__name__)

SYNTHESIS_MAX_TOKENS = 2048
RAW_SUMMARY_LIMIT = 500

USER_PROMPT = (
    "Analyze this medical image and provide a structured educational explanation."
)

GROUNDED_NOTE = "Use ONLY the provided CONTEXT to generate your response."
UNGROUNDED_NOTE = (
    "No specific guidelines retrieved. Provide general educational information "
    "about this imaging type."
)

# Patient-facing text must never contain these words.
PATIENT_FORBIDDEN_WORDS = (
    "abnormal",
    "concerning",
    "urgent",
    "critical",
    "dangerous",
    "serious",
    "worrying",
)
CLINICIAN_URGENCY_LABELS = ("critical", "emergent", "urgent")

# Fields the model may fill; everything else comes from the pipeline.
_PIPELINE_FIELDS = frozenset({"report_type", "mode", "references"})


def _clinician_prompt(type_name: str, context: str, note: str) -> str:
    labels = ", ".join(f'"{w}"' for w in CLINICIAN_URGENCY_LABELS)
    return f"""\
You are a radiology education assistant for healthcare professionals.

{context}

{note}

IMAGING TYPE: {type_name}

MANDATORY OUTPUT STRUCTURE (JSON):
{{
  "imagingTypeAndRegion": "Imaging: {type_name}\\nRegion: [detected or 'Unspecified']",
  "keyObservations": [
    "• [Observation 1 using standard medical terminology]",
    "• [Observation 2 - describe only what is visible]",
    "• [Observation 3 - areas requiring correlation]"
  ],
  "impression": "[2-3 lines, non-diagnostic]",
  "recommendation": "Correlation with clinical findings and formal radiology report is advised.",
  "summary": "[1-2 line non-diagnostic overview of the study]",
  "disclaimer": "AI-generated educational summary. Not a substitute for formal radiological interpretation."
}}

RULES:
- Use concise medical terminology
- Present key observations as bullet points
- Only describe what is visible - never hallucinate findings
- No disease confirmation or diagnosis
- No urgency labels ({labels})
- No treatment recommendations"""


def _patient_prompt(type_name: str, context: str, note: str) -> str:
    words = ", ".join(PATIENT_FORBIDDEN_WORDS)
    return f"""\
You are a friendly assistant helping patients understand medical imaging.

{context}

{note}

IMAGING TYPE: {type_name}

MANDATORY OUTPUT STRUCTURE (JSON):
{{
  "whatThisTestIsAbout": "A {type_name} is a type of scan that [simple 1-2 sentence explanation of what this imaging does].",
  "simpleImageExplanation": "[Explain what is visible in the image using plain language. Avoid medical terms or explain them in brackets.]",
  "summary": "[2-3 lines max. State that the image shows patterns doctors review and does NOT confirm a disease.]",
  "possibleRiskFactors": "Doctors often consider factors like age, lifestyle, long-term conditions, or previous medical history when reviewing scans like this.",
  "whyConsultDoctor": "Only a doctor can review this image along with your symptoms and medical history to explain what it means for you.",
  "reassurance": "Many scan findings are common and manageable. Your doctor will guide you clearly on the next steps.",
  "disclaimer": "⚠️ This explanation is for educational purposes only and is not a medical diagnosis."
}}

RULES:
- Use very simple, everyday words a child could understand
- Keep explanations short (2-4 sentences max per section)
- Focus on what the test IS FOR, not specific results
- Be calm and reassuring throughout
- NEVER use these words: {words}

PROHIBITED:
- Medical jargon without explanation
- Disease names or diagnoses
- Specific findings interpretation
- Any language that could cause anxiety"""


def build_system_prompt(mode: Mode, report_type: ReportType, context: str) -> str:
    """Build the prompt contract for one audience (patient or clinician)."""
    note = GROUNDED_NOTE if context else UNGROUNDED_NOTE
    if mode == "clinician":
        return _clinician_prompt(report_type.display_name, context, note)
    return _patient_prompt(report_type.display_name, context, note)


def parse_model_output(raw: str) -> dict[str, Any]:
    """Parse the completion; unparseable text becomes a truncated summary."""
    try:
        return extract_json_object(raw)
    except MalformedOutputError as e:
        logger.warning("Model output not JSON (%s); using raw text as summary", e)
        return {"summary": raw[:RAW_SUMMARY_LIMIT]}


def _usable(value: Any, default: Any) -> bool:
    if isinstance(default, list):
        return (
            isinstance(value, list)
            and bool(value)
            and all(isinstance(v, str) and v for v in value)
        )
    return isinstance(value, str) and bool(value.strip())


def merge_with_defaults(
    parsed: dict[str, Any],
    mode: Mode,
    report_type: ReportType,
    references: list[str],
) -> PatientAnalysis | ClinicianAnalysis:
    """Take each active-mode field from the model when usable, else the canned default."""
    default = safe_response(mode, report_type, references=references)
    updates = {}
    for name in type(default).model_fields:
        if name in _PIPELINE_FIELDS:
            continue
        value = parsed.get(to_camel(name))
        if _usable(value, getattr(default, name)):
            updates[name] = value
    return default.model_copy(update=updates)


class ResponseSynthesizer:
    def __init__(self, model: GenerativeModel) -> None:
        self._model = model

    async def synthesize(
        self,
        *,
        mode: Mode,
        report_type: ReportType,
        image: ImageAttachment,
        context: str,
        references: list[str],
    ) -> PatientAnalysis | ClinicianAnalysis:
        """Generate the explanation; provider failures yield the canned default."""
        system_prompt = build_system_prompt(mode, report_type, context)
        logger.info(
            "Calling model for %s analysis (grounded=%s)...", mode, bool(context)
        )
        logger.debug("System prompt:\n%s", system_prompt)

        try:
            raw = await self._model.generate(
                system_instruction=system_prompt,
                prompt=USER_PROMPT,
                image=image,
                max_output_tokens=SYNTHESIS_MAX_TOKENS,
            )
        except ProviderError as e:
            if e.is_quota:
                logger.warning("Model quota/rate limit (status=%s); using defaults", e.status)
            else:
                logger.error("Model call failed (status=%s): %s", e.status, e)
            return safe_response(mode, report_type, references=references)

        if not raw or not raw.strip():
            logger.warning("Model returned empty content; using defaults")
            return safe_response(mode, report_type, references=references)

        return merge_with_defaults(parse_model_output(raw), mode, report_type, references)
