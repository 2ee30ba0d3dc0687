"""Knowledge document ingestion endpoint."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from report_explainer.config import ConfigurationError
from report_explainer.dependencies import Services, get_services
from report_explainer.models.schemas import DocumentIn, ErrorDetail, IngestResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


def _parse_document(raw: Any) -> DocumentIn:
    """Lenient parse: a malformed item becomes an incomplete document."""
    if not isinstance(raw, dict):
        return DocumentIn()
    try:
        return DocumentIn.model_validate(raw)
    except ValidationError:
        title = raw.get("title")
        return DocumentIn(title=title if isinstance(title, str) else None)


@router.post("/ingest", response_model=IngestResponse)
async def ingest_documents(
    payload: Any = Body(None),
    services: Services = Depends(get_services),
) -> IngestResponse:
    """Ingest one document object or a ``{"documents": [...]}`` batch."""
    try:
        services.settings.require_embedding_key()
    except ConfigurationError as e:
        logger.error("Ingestion rejected: %s", e)
        raise HTTPException(
            status_code=500,
            detail=ErrorDetail(code="CONFIGURATION_ERROR", message=str(e)).model_dump(),
        )

    if isinstance(payload, dict) and isinstance(payload.get("documents"), list):
        raw_documents = payload["documents"]
    else:
        # Non-object bodies fall through to the INVALID_REQUEST check below
        raw_documents = [payload]
    if not raw_documents or not isinstance(raw_documents[0], dict) or not raw_documents[0].get("title"):
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="INVALID_REQUEST",
                message=(
                    "Invalid request. Provide document(s) with: title, content, "
                    "source, reportType, contentCategory"
                ),
            ).model_dump(),
        )

    documents = [_parse_document(raw) for raw in raw_documents]
    logger.info("Ingesting %d document(s)", len(documents))
    return await services.ingestion.ingest(documents)
