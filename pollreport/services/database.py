"""PostgreSQL access to the poll store using asyncpg."""

from __future__ import annotations

import ssl
import uuid
from datetime import date
from typing import Any

import asyncpg

from pollreport.config import settings


# Connection pool
_pool: asyncpg.Pool | None = None


def _db_available() -> bool:
    """Check if database is configured."""
    return settings.database_configured


def _ssl_context() -> ssl.SSLContext | None:
    if not settings.postgres_ssl:
        return None
    # The managed host's certificate chain is not verified.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _connect_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "min_size": settings.db_pool_min_size,
        "max_size": settings.db_pool_max_size,
    }
    if settings.database_url:
        kwargs["dsn"] = settings.database_url
    else:
        kwargs.update(
            host=settings.postgres_host,
            user=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_database,
            port=settings.postgres_port,
        )
    context = _ssl_context()
    if context is not None:
        kwargs["ssl"] = context
    return kwargs


async def _get_pool() -> asyncpg.Pool:
    """Get or create the database connection pool."""
    global _pool
    if not _db_available():
        raise RuntimeError("Database not configured. Set DATABASE_URL or POSTGRES_HOST in .env")
    if _pool is None:
        _pool = await asyncpg.create_pool(**_connect_kwargs())
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


# --- Polls ---

async def search_polls(query: str, limit: int) -> list[dict[str, Any]]:
    """Run the store's ranked search procedure, best match first."""
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT * FROM pollsearcher($1, $2)", query, limit)
        return [dict(r) for r in rows]


_INTEGER_TYPES = {"int2", "int4", "int8"}


def _id_param(poll_id: str, type_name: str) -> Any:
    """Convert a path id to the `id` column's type; None if it cannot match."""
    try:
        if type_name in _INTEGER_TYPES:
            return int(poll_id)
        if type_name == "uuid":
            return uuid.UUID(poll_id)
    except ValueError:
        return None
    return poll_id


async def get_poll(poll_id: str) -> dict[str, Any] | None:
    """Get a single embedded poll by id."""
    pool = await _get_pool()
    async with pool.acquire() as conn:
        statement = await conn.prepare(
            """
            SELECT id::text AS id, "Title", "Url", "Seendate", "ChartData",
                   "SourceCountry", "Language", "Domain"
            FROM surveyembeddings
            WHERE id = $1 AND embedding IS NOT NULL
            """
        )
        value = _id_param(poll_id, statement.get_parameters()[0].name)
        if value is None:
            return None
        row = await statement.fetchrow(value)
        return dict(row) if row else None


async def get_random_charts(day: date) -> list[dict[str, Any]]:
    """Sample charts first seen on the given day."""
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT * FROM get_random_charts($1)", day.isoformat())
        return [dict(r) for r in rows]


# --- Articles ---

async def get_article_texts(urls: list[str]) -> list[dict[str, Any]]:
    """Fetch scraped article bodies for the given source URLs."""
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            'SELECT "Url", "ArticleText" FROM polls WHERE "Url" = ANY($1::text[])',
            urls,
        )
        return [dict(r) for r in rows]


# --- Metrics ---

async def count_polls() -> int:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        value = await conn.fetchval(
            "SELECT count(*) FROM surveyembeddings WHERE embedding IS NOT NULL"
        )
        return int(value or 0)


_GROUPABLE_COLUMNS = {"SourceCountry", "Domain", "Language"}


async def count_polls_by(column: str, limit: int) -> list[tuple[str, int]]:
    """Top `limit` values of a poll column with their observation counts."""
    if column not in _GROUPABLE_COLUMNS:
        raise ValueError(f"Unsupported grouping column: {column}")
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT "{column}" AS value, COUNT(*) AS observation_count
            FROM surveyembeddings
            WHERE "{column}" != ''
            GROUP BY "{column}"
            ORDER BY observation_count DESC
            LIMIT $1
            """,
            limit,
        )
        return [(r["value"], int(r["observation_count"])) for r in rows]
