from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pollreport.api.deps import get_metrics_service
from pollreport.models.schemas import ErrorResponse, MetricsResponse
from pollreport.services.logger import logger
from pollreport.services.metrics import MetricsService

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get(
    "",
    response_model=MetricsResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_metrics(
    refresh: bool = False,
    service: MetricsService = Depends(get_metrics_service),
):
    """Poll totals by country, domain and language; cached for 24 hours."""
    try:
        return await service.get(refresh=refresh)
    except Exception as exc:
        logger.error(f"Error fetching metrics data: {exc}")
        return JSONResponse({"error": "Failed to fetch metrics data"}, status_code=500)
