"""Report classifier: image -> closed-set report type + extracted text."""

from __future__ import annotations

import logging

from report_explainer.models.rag import Classification, ReportType
from report_explainer.services.parsing import MalformedOutputError, extract_json_object
from report_explainer.services.providers import (
    GenerativeModel,
    ImageAttachment,
    ProviderError,
)

logger = logging.getLogger(__name__)

CLASSIFIER_SYSTEM_PROMPT = """\
Analyze this medical image. Identify the type and extract text.
Respond in JSON: {"reportType": "ct"|"mri"|"xray"|"lab", "extractedText": "visible text and observations"}"""

CLASSIFIER_USER_PROMPT = "Classify this medical image."
CLASSIFIER_MAX_TOKENS = 1024

DEFAULT_EXTRACTED_TEXT = "medical imaging scan"
FALLBACK_CLASSIFICATION = Classification(
    report_type=ReportType.default(),
    extracted_text="medical imaging scan computed tomography abdominal chest radiograph",
)


class ReportClassifier:
    def __init__(self, model: GenerativeModel) -> None:
        self._model = model

    async def classify(self, image: bytes, media_type: str) -> Classification:
        """Classify an uploaded image; never raises.

        Transport, timeout and parse failures all yield FALLBACK_CLASSIFICATION.
        """
        logger.info("Detecting report type (%s, %d bytes)...", media_type, len(image))
        try:
            raw = await self._model.generate(
                system_instruction=CLASSIFIER_SYSTEM_PROMPT,
                prompt=CLASSIFIER_USER_PROMPT,
                image=ImageAttachment(data=image, media_type=media_type),
                max_output_tokens=CLASSIFIER_MAX_TOKENS,
            )
            parsed = extract_json_object(raw)
        except ProviderError as e:
            logger.error("Detection API error (status=%s): %s", e.status, e)
            return FALLBACK_CLASSIFICATION
        except MalformedOutputError as e:
            logger.warning("Detection output unparseable: %s", e)
            return FALLBACK_CLASSIFICATION

        report_type = ReportType.coerce(parsed.get("reportType"))
        if report_type.value != str(parsed.get("reportType", "")).strip().lower():
            logger.info(
                "Normalized report type %r -> %s", parsed.get("reportType"), report_type
            )
        extracted = parsed.get("extractedText")
        return Classification(
            report_type=report_type,
            extracted_text=extracted
            if isinstance(extracted, str) and extracted.strip()
            else DEFAULT_EXTRACTED_TEXT,
        )
