"""Report analysis pipeline: every stage degrades instead of failing the request."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Awaitable
from typing import TypeVar

from report_explainer.config import Settings
from report_explainer.models.rag import (
    Classification,
    Mode,
    ReportType,
    SafeContext,
    normalize_mode,
)
from report_explainer.models.schemas import (
    AnalyzeRequest,
    ClinicianAnalysis,
    PatientAnalysis,
)
from report_explainer.services.classifier import FALLBACK_CLASSIFICATION, ReportClassifier
from report_explainer.services.context import build_context, extract_references
from report_explainer.services.embedding import Embedder
from report_explainer.services.fallbacks import (
    CONFIGURATION_MESSAGE,
    NO_IMAGE_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    safe_response,
)
from report_explainer.services.providers import ImageAttachment
from report_explainer.services.retrieval import HybridSearchEngine
from report_explainer.services.safety import apply_safety_filter
from report_explainer.services.synthesizer import ResponseSynthesizer

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Extracted text shorter than this is not worth a retrieval round trip
MIN_QUERY_CHARS = 10


def decode_image(request: AnalyzeRequest) -> ImageAttachment | None:
    """Decode the base64 upload (bare or data-URL); None when absent or invalid."""
    payload = (request.image_base64 or "").strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    # MIME-style uploads wrap lines at 76 columns
    payload = "".join(payload.split())
    if not payload:
        return None
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Uploaded image is not valid base64")
        return None
    return ImageAttachment(data=data, media_type=request.file_type or "image/png") if data else None


async def _attempt(stage: str, step: Awaitable[T], fallback: T) -> T:
    """Await one pipeline stage, substituting ``fallback`` on any failure."""
    try:
        return await step
    except Exception:
        logger.exception("Stage '%s' failed; continuing with fallback", stage)
        return fallback


class AnalysisPipeline:
    def __init__(
        self,
        settings: Settings,
        *,
        classifier: ReportClassifier,
        embedder: Embedder,
        search_engine: HybridSearchEngine,
        synthesizer: ResponseSynthesizer,
    ) -> None:
        self._settings = settings
        self._classifier = classifier
        self._embedder = embedder
        self._search_engine = search_engine
        self._synthesizer = synthesizer

    async def analyze(self, request: AnalyzeRequest) -> PatientAnalysis | ClinicianAnalysis:
        """Turn an uploaded image into a schema-valid explanation. Never raises."""
        mode = normalize_mode(request.mode)
        try:
            return await self._run(request, mode)
        except Exception:
            logger.exception("Analysis failed unexpectedly")
            return safe_response(mode, ReportType.default(), UNEXPECTED_ERROR_MESSAGE)

    async def _run(self, request: AnalyzeRequest, mode: Mode) -> PatientAnalysis | ClinicianAnalysis:
        image = decode_image(request)
        if image is None:
            return safe_response(mode, ReportType.default(), NO_IMAGE_MESSAGE)

        if not self._settings.google_api_key:
            logger.error("GOOGLE_API_KEY not configured")
            return safe_response(mode, ReportType.default(), CONFIGURATION_MESSAGE)

        logger.info("=== ANALYSIS START (mode=%s) ===", mode)
        classification = await _attempt(
            "classification",
            self._classifier.classify(image.data, image.media_type),
            FALLBACK_CLASSIFICATION,
        )
        report_type = classification.report_type
        logger.info("Report type: %s", report_type)

        contexts = await _attempt("retrieval", self._retrieve(classification, mode), [])
        references = extract_references(contexts)
        context = build_context(contexts)
        logger.info("Grounding: %d safe contexts, %d references", len(contexts), len(references))

        result = await _attempt(
            "synthesis",
            self._synthesizer.synthesize(
                mode=mode,
                report_type=report_type,
                image=image,
                context=context,
                references=references,
            ),
            safe_response(mode, report_type, references=references),
        )
        logger.info("=== ANALYSIS COMPLETE ===")
        return result

    async def _retrieve(self, classification: Classification, mode: Mode) -> list[SafeContext]:
        if not self._settings.effective_embedding_key:
            logger.info("No embedding key configured; skipping retrieval")
            return []
        if len(classification.extracted_text) < MIN_QUERY_CHARS:
            logger.info("Extracted text too short; skipping retrieval")
            return []

        embedding = await self._embedder.embed(classification.extracted_text, "query")
        if embedding is None:
            logger.info("No query embedding; continuing without retrieval")
            return []

        chunks = await self._search_engine.search(
            embedding,
            classification.extracted_text,
            classification.report_type.value,
        )
        return apply_safety_filter(chunks, mode)
