from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from pollreport.api.deps import get_search_gateway
from pollreport.config import settings
from pollreport.models.schemas import ErrorResponse, SearchResponse
from pollreport.tools.poll_search import PollSearchGateway

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get(
    "",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}},
)
async def search_polls(
    q: str | None = None,
    limit: int = Query(default=settings.search_default_limit, ge=1, le=100),
    gateway: PollSearchGateway = Depends(get_search_gateway),
):
    """Ranked semantic search over the poll store."""
    if not q or not q.strip():
        return JSONResponse({"error": "Query parameter is required"}, status_code=400)
    polls = await gateway.search(q.strip(), limit)
    return SearchResponse(polls=polls)
