"""Aggregate poll metrics behind a time-bounded, single-flight cache."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Generic, TypeVar

from pollreport.config import settings
from pollreport.models.poll import FlatPollChart
from pollreport.models.schemas import MetricsResponse
from pollreport.services import database as db
from pollreport.services.logger import logger

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Single-entry read-through cache.

    Concurrent callers that miss share one in-flight computation: the lock
    is held while computing, and waiters return the value stored while they
    waited. Every store bumps `generation`.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: T | None = None
        self._stored_at: float | None = None
        self.generation = 0
        self._lock = asyncio.Lock()

    def is_fresh(self) -> bool:
        if self._value is None or self._stored_at is None:
            return False
        return self._clock() - self._stored_at < self.ttl_seconds

    async def get_or_compute(
        self,
        compute: Callable[[], Awaitable[T]],
        *,
        refresh: bool = False,
    ) -> T:
        if not refresh and self.is_fresh():
            return self._value  # type: ignore[return-value]

        seen_generation = self.generation
        async with self._lock:
            # Another caller stored a value while we waited for the lock.
            if self.generation != seen_generation and self.is_fresh():
                return self._value  # type: ignore[return-value]
            value = await compute()
            self._value = value
            self._stored_at = self._clock()
            self.generation += 1
            return value


def _bar_chart(title: str, labels: list[str], values: list[int], x_label: str, y_label: str, explanation: str) -> FlatPollChart:
    return FlatPollChart(
        title=title,
        labels=labels,
        values=values,
        x_label=x_label,
        y_label=y_label,
        explanation=explanation,
        survey_source="Database Analytics",
        survey_year=str(datetime.now(timezone.utc).year),
        chart_kind="bar",
    )


async def _grouped_chart(column: str, noun: str, plural: str, top_n: int) -> FlatPollChart:
    rows = await db.count_polls_by(column, top_n)
    return _bar_chart(
        f"Top {top_n} {plural.title()} by Poll Count",
        [str(value) for value, _ in rows],
        [count for _, count in rows],
        noun.title(),
        "Number of Polls",
        f"Distribution of polls by {noun}, showing the top {top_n} {plural}",
    )


async def compute_metrics() -> MetricsResponse:
    """Query the store for the poll totals and per-column distributions."""
    top_n = settings.metrics_top_n
    total = await db.count_polls()
    countries = await _grouped_chart("SourceCountry", "country", "countries", top_n)
    domains = await _grouped_chart("Domain", "domain", "domains", top_n)
    languages = await _grouped_chart("Language", "language", "languages", top_n)
    return MetricsResponse(
        totalPolls=_bar_chart(
            "Total Number of Polls",
            ["Total Polls"],
            [total],
            "Metric",
            "Count",
            "Total number of polls with embeddings in the database",
        ),
        countriesData=countries,
        domainsData=domains,
        languagesData=languages,
    )


class MetricsService:
    def __init__(
        self,
        cache: TTLCache[MetricsResponse] | None = None,
        compute: Callable[[], Awaitable[MetricsResponse]] = compute_metrics,
    ):
        self.cache = cache or TTLCache(settings.metrics_cache_ttl_seconds)
        self._compute = compute

    async def get(self, *, refresh: bool = False) -> MetricsResponse:
        if refresh:
            logger.info("Fetching fresh metrics data (refresh requested)")
        elif self.cache.is_fresh():
            logger.debug("Serving metrics from cache")
        return await self.cache.get_or_compute(self._compute, refresh=refresh)
