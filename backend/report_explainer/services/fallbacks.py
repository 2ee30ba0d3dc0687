"""Canned, pre-approved analysis results used whenever generation cannot be trusted."""

from __future__ import annotations

from report_explainer.models.rag import Mode, ReportType
from report_explainer.models.schemas import ClinicianAnalysis, PatientAnalysis

PATIENT_DISCLAIMER = (
    "⚠️ This explanation is for educational purposes only and is not a medical diagnosis."
)
CLINICIAN_DISCLAIMER = (
    "AI-generated educational summary. Not a substitute for formal radiological interpretation."
)

NO_IMAGE_MESSAGE = "No image provided. Please upload a valid medical report."
CONFIGURATION_MESSAGE = "Service configuration error. Please try again later."
UNEXPECTED_ERROR_MESSAGE = "An error occurred. Please try again."


def patient_default(
    report_type: ReportType, message: str | None = None, references: list[str] | None = None
) -> PatientAnalysis:
    name = report_type.display_name
    return PatientAnalysis(
        report_type=report_type,
        what_this_test_is_about=(
            f"A {name} is a type of scan that takes detailed pictures of the inside "
            "of your body to help doctors understand what is happening."
        ),
        simple_image_explanation=(
            "This image shows internal body structures that doctors usually check "
            "for size, shape, and any unusual changes."
        ),
        summary=message
        or (
            "The scan shows areas that doctors carefully look at to understand your "
            "health. By itself, this image does not confirm any illness."
        ),
        possible_risk_factors=(
            "Doctors often consider factors like age, lifestyle, long-term conditions, "
            "or previous medical history when reviewing scans like this."
        ),
        why_consult_doctor=(
            "Only a doctor can review this image along with your symptoms and medical "
            "history to explain what it means for you."
        ),
        reassurance=(
            "Many scan findings are common and manageable. Your doctor will guide you "
            "clearly on the next steps."
        ),
        references=list(references or []),
        disclaimer=PATIENT_DISCLAIMER,
    )


def clinician_default(
    report_type: ReportType, message: str | None = None, references: list[str] | None = None
) -> ClinicianAnalysis:
    return ClinicianAnalysis(
        report_type=report_type,
        summary=message
        or "Imaging study received. Guideline-based interpretation requires clinical correlation.",
        imaging_type_and_region=(
            f"Imaging: {report_type.display_name}\n"
            "Region: To be determined based on clinical context"
        ),
        key_observations=[
            "• Structural patterns noted",
            "• Density / contrast variations observed",
            "• Areas requiring clinical correlation",
        ],
        impression=(
            "Imaging features warrant clinical correlation with patient history and "
            "additional investigations if indicated."
        ),
        recommendation="Correlation with clinical findings and formal radiology report is advised.",
        references=list(references or []),
        disclaimer=CLINICIAN_DISCLAIMER,
    )


def safe_response(
    mode: Mode,
    report_type: ReportType,
    message: str | None = None,
    references: list[str] | None = None,
) -> PatientAnalysis | ClinicianAnalysis:
    """Canned result for the mode; ``message`` replaces the default summary."""
    if mode == "clinician":
        return clinician_default(report_type, message, references)
    return patient_default(report_type, message, references)
