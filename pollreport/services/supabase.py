"""Supabase (PostgREST over HTTP) access used as a fallback to the direct pool."""
from __future__ import annotations

import asyncio
from typing import Any

from supabase import Client, create_client

from pollreport.config import settings


def get_client() -> Client:
    return create_client(settings.supabase_url, settings.supabase_anon_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread, bounded by the HTTP timeout."""
    return await asyncio.wait_for(
        asyncio.to_thread(query.execute),
        timeout=settings.supabase_timeout_seconds,
    )


async def search_polls(query: str, limit: int) -> list[dict[str, Any]]:
    """Call the `pollsearcher` procedure through the REST RPC interface."""
    result = await _execute(
        client().rpc("pollsearcher", {"query_text": query, "match_count": limit})
    )
    return list(result.data or [])
