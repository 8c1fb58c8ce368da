from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from pollreport.models.poll import FlatPollChart
from pollreport.models.schemas import ErrorResponse, RandomPollsResponse
from pollreport.services import polls as poll_service
from pollreport.services.logger import logger

router = APIRouter(prefix="/api", tags=["polls"])


@router.get(
    "/poll/{poll_id}",
    response_model=FlatPollChart,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_poll(poll_id: str):
    """A single poll flattened into chart-ready form."""
    try:
        chart = await poll_service.get_flat_poll(poll_id)
    except Exception as exc:
        logger.error(f"Database query error for poll id {poll_id}: {exc}")
        return JSONResponse({"error": "Failed to fetch poll data"}, status_code=500)
    if chart is None:
        return JSONResponse({"error": "Poll not found"}, status_code=404)
    return chart


@router.get(
    "/random-polls",
    response_model=RandomPollsResponse,
    responses={500: {"model": ErrorResponse}},
)
async def random_polls():
    """A random sample of the polls first seen yesterday."""
    try:
        polls = await poll_service.get_random_polls()
    except Exception as exc:
        logger.error(f"Database query error while sampling polls: {exc}")
        return JSONResponse({"error": "Failed to fetch random polls"}, status_code=500)
    return RandomPollsResponse(polls=polls)
