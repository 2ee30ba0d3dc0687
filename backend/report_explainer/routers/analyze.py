"""Report analysis endpoint. Always answers 200 with a well-formed result."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from report_explainer.dependencies import Services, get_services
from report_explainer.models.rag import ReportType, normalize_mode
from report_explainer.models.schemas import AnalysisResponse, AnalyzeRequest
from report_explainer.services.fallbacks import (
    NO_IMAGE_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    safe_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_report(
    http_request: Request,
    services: Services = Depends(get_services),
) -> AnalysisResponse:
    # Unparseable JSON still gets a 200 safe response
    raw = await http_request.body()
    try:
        payload = json.loads(raw) if raw.strip() else None
    except ValueError as e:
        logger.warning("Analyze request body is not valid JSON: %s", e)
        result = safe_response("patient", ReportType.default(), UNEXPECTED_ERROR_MESSAGE)
        return AnalysisResponse.from_result(result)

    try:
        request = AnalyzeRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning("Malformed analyze request: %s", e.errors()[:3])
        mode = payload.get("mode") if isinstance(payload, dict) else None
        result = safe_response(normalize_mode(mode), ReportType.default(), NO_IMAGE_MESSAGE)
        return AnalysisResponse.from_result(result)

    logger.info("Analyze request: mode=%s fileType=%s", request.mode, request.file_type)
    result = await services.pipeline.analyze(request)
    return AnalysisResponse.from_result(result)
