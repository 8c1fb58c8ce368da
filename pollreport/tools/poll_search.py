from __future__ import annotations

from typing import Any

from pollreport.config import settings
from pollreport.models.poll import Poll
from pollreport.services import database as db
from pollreport.services import supabase
from pollreport.services.logger import log_db_operation, logger


class PollSearchGateway:
    """Ranked poll search against the store's `pollsearcher` procedure.

    Ranking happens entirely in the store. Store failures never propagate:
    the direct connection is tried first, then the Supabase HTTP RPC when it
    is configured, and an empty list is returned when neither succeeds, so a
    store error is indistinguishable from "no results" to callers.
    """

    def __init__(self, *, use_http_fallback: bool | None = None):
        if use_http_fallback is None:
            use_http_fallback = settings.supabase_configured
        self.use_http_fallback = use_http_fallback

    async def search(self, query: str, limit: int) -> list[Poll]:
        rows = await self._fetch_rows(query, limit)
        polls: list[Poll] = []
        for row in rows:
            try:
                polls.append(Poll.from_row(row))
            except ValueError as exc:
                logger.warning(f"Skipping malformed poll row {row.get('id')!r}: {exc}")
        return polls

    async def _fetch_rows(self, query: str, limit: int) -> list[dict[str, Any]]:
        try:
            rows = await db.search_polls(query, limit)
            log_db_operation("rpc", "pollsearcher", "success", details=f"{len(rows)} rows")
            return rows
        except Exception as exc:
            log_db_operation("rpc", "pollsearcher", "failed", error=str(exc))

        if not self.use_http_fallback:
            return []

        try:
            rows = await supabase.search_polls(query, limit)
            log_db_operation(
                "rpc", "pollsearcher", "success", details=f"http fallback, {len(rows)} rows"
            )
            return rows
        except Exception as exc:
            log_db_operation("rpc", "pollsearcher", "failed", details="http fallback", error=str(exc))
            return []
