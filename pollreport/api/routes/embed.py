from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from pollreport.services import polls as poll_service
from pollreport.services.chart_embed import EMBED_HEADERS, render_embed_page
from pollreport.services.logger import logger

router = APIRouter(prefix="/embed", tags=["embed"])


@router.get("/{poll_id}", response_class=HTMLResponse)
async def embed_chart(poll_id: str):
    """Standalone chart page meant to be framed by other sites."""
    try:
        chart = await poll_service.get_flat_poll(poll_id)
    except Exception as exc:
        logger.error(f"Error fetching poll data for embed {poll_id}: {exc}")
        return HTMLResponse(
            render_embed_page(None, error="Failed to fetch poll data."),
            status_code=500,
            headers=EMBED_HEADERS,
        )
    if chart is None:
        return HTMLResponse(
            render_embed_page(None, error="Poll not found."),
            status_code=404,
            headers=EMBED_HEADERS,
        )
    return HTMLResponse(render_embed_page(chart), headers=EMBED_HEADERS)
