from __future__ import annotations

from fastapi import APIRouter

from pollreport.api.deps import build_orchestrator
from pollreport.errors import ReportError
from pollreport.models.schemas import ErrorResponse, ReportRequest, ReportResponse
from pollreport.services import logger as log_service

router = APIRouter(prefix="/api/report", tags=["report"])


@router.post(
    "",
    response_model=ReportResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_report(request: ReportRequest):
    """Generate a narrative report grounded in matching polls and their articles."""
    log_service.log_event(
        event_type="report_requested",
        message="Report requested",
        model=request.model,
        query=request.query[:100],
    )
    orchestrator = build_orchestrator(request.model)
    try:
        outcome = await orchestrator.run(request.query)
    except ReportError:
        raise
    except Exception as exc:
        log_service.logger.exception(f"Unexpected failure while generating report: {exc}")
        raise ReportError(str(exc)) from exc
    return ReportResponse(report=outcome.report)
