"""Pydantic request/response/error schemas."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from report_explainer.models.rag import ReportType


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Ingestion schemas ---

REQUIRED_DOCUMENT_FIELDS = (
    "title",
    "content",
    "source",
    "report_type",
    "content_category",
)


class DocumentIn(CamelModel):
    """A document submitted for ingestion.

    Every field is optional at parse time so one incomplete document in a
    batch is reported on its own instead of rejecting the whole request.
    """

    title: str | None = None
    content: str | None = None
    source: str | None = None  # "RSNA", "CDC", "WHO", ...
    report_type: str | None = None  # "ct", "mri", "xray", "lab", "general"
    content_category: str | None = None  # "findings", "anatomy", "guidelines", ...
    metadata: dict[str, Any] = Field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_DOCUMENT_FIELDS if not getattr(self, name)]


class IngestResult(CamelModel):
    title: str
    document_id: str
    chunks_created: int
    error: str | None = None


class IngestResponse(CamelModel):
    success: bool
    message: str
    results: list[IngestResult]


# --- Analysis schemas ---


class AnalyzeRequest(CamelModel):
    image_base64: str | None = None
    # null is accepted for both; decode_image and normalize_mode apply defaults
    file_type: str | None = "image/png"
    mode: str | None = "patient"


class _AnalysisBase(CamelModel):
    report_type: ReportType
    summary: str
    references: list[str] = Field(default_factory=list)
    disclaimer: str


class PatientAnalysis(_AnalysisBase):
    mode: Literal["patient"] = "patient"
    what_this_test_is_about: str
    simple_image_explanation: str
    possible_risk_factors: str
    why_consult_doctor: str
    reassurance: str


class ClinicianAnalysis(_AnalysisBase):
    mode: Literal["clinician"] = "clinician"
    imaging_type_and_region: str
    key_observations: list[str]
    impression: str
    recommendation: str


AnalysisResult = Annotated[
    PatientAnalysis | ClinicianAnalysis, Field(discriminator="mode")
]


class AnalysisResponse(CamelModel):
    """Flat wire shape: fields of the non-selected mode are always null."""

    report_type: ReportType
    mode: Literal["patient", "clinician"]
    # Patient mode
    what_this_test_is_about: str | None = None
    simple_image_explanation: str | None = None
    summary: str
    possible_risk_factors: str | None = None
    why_consult_doctor: str | None = None
    reassurance: str | None = None
    # Clinician mode
    imaging_type_and_region: str | None = None
    key_observations: list[str] | None = None
    impression: str | None = None
    recommendation: str | None = None
    # Common
    references: list[str]
    disclaimer: str

    @classmethod
    def from_result(cls, result: PatientAnalysis | ClinicianAnalysis) -> AnalysisResponse:
        match result:
            case PatientAnalysis() | ClinicianAnalysis():
                # Fields the variant does not define stay None
                return cls(**result.model_dump())
            case _:
                raise TypeError(f"Unknown analysis result: {type(result).__name__}")


# --- Error schema ---


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict = {}
