"""Audience safety filter for retrieved knowledge chunks."""

from __future__ import annotations

import logging

from report_explainer.models.rag import (
    DEFAULT_DOCUMENT_TITLE,
    Mode,
    RetrievedChunk,
    SafeContext,
)

logger = logging.getLogger(__name__)

# No audience ever sees these categories
DISALLOWED_CATEGORIES = ("diagnosis", "treatment", "prescription", "medication")
PATIENT_EXCLUDED_CATEGORIES = ("clinical_protocol", "research")


def _matches(category: str, blocked: tuple[str, ...]) -> bool:
    return any(b in category for b in blocked)


def is_allowed(category: str, mode: Mode) -> bool:
    category = category.lower()
    if _matches(category, DISALLOWED_CATEGORIES):
        return False
    if mode == "patient" and _matches(category, PATIENT_EXCLUDED_CATEGORIES):
        return False
    return True


def apply_safety_filter(chunks: list[RetrievedChunk], mode: Mode) -> list[SafeContext]:
    """Drop chunks unsuitable for the audience and project the rest to SafeContext."""
    safe = [
        SafeContext(
            content=c.content,
            source=c.source,
            document_title=c.document_title or DEFAULT_DOCUMENT_TITLE,
            category=c.content_category,
        )
        for c in chunks
        if is_allowed(c.content_category, mode)
    ]
    if len(safe) < len(chunks):
        logger.info(
            "Safety filter (%s): kept %d/%d chunks", mode, len(safe), len(chunks)
        )
    return safe
