"""Pydantic models for RAG: report types, chunks, and retrieval results."""

from __future__ import annotations

import enum
from typing import Literal

from pydantic import BaseModel

Mode = Literal["patient", "clinician"]
EmbeddingMode = Literal["document", "query"]

DEFAULT_DOCUMENT_TITLE = "Medical Guidelines"


class ReportType(enum.StrEnum):
    """Closed set of report categories an uploaded image can resolve to."""

    CT = "ct"
    MRI = "mri"
    XRAY = "xray"
    LAB = "lab"

    @classmethod
    def default(cls) -> ReportType:
        return cls.CT

    @classmethod
    def coerce(cls, value: object) -> ReportType:
        """Map any label onto the closed set.

        Unrecognized, empty or non-string labels resolve to ``ReportType.default()``
        (CT); there is no "other" category.
        """
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.default()

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ReportType.CT: "CT Scan",
    ReportType.MRI: "MRI",
    ReportType.XRAY: "X-Ray",
    ReportType.LAB: "Lab Report",
}


def normalize_mode(value: object) -> Mode:
    """Anything other than "clinician" is treated as the patient audience."""
    return "clinician" if value == "clinician" else "patient"


class TextChunk(BaseModel):
    """A sentence-aligned slice of a document's text."""

    text: str
    index: int


class DocumentChunk(BaseModel):
    """A chunk of a knowledge document with metadata for vector storage."""

    document_id: str
    text: str
    chunk_index: int
    source: str
    report_type: str
    content_category: str


class RetrievedChunk(BaseModel):
    """A hybrid search candidate with its vector, lexical and combined scores."""

    chunk_id: str
    document_id: str
    content: str
    chunk_index: int
    source: str
    report_type: str
    content_category: str
    similarity: float
    text_rank: float
    combined_score: float
    document_title: str | None = None


class SafeContext(BaseModel):
    """Post-filter projection of a retrieved chunk; the only form a prompt sees."""

    content: str
    source: str
    document_title: str
    category: str


class Classification(BaseModel):
    report_type: ReportType
    extracted_text: str
