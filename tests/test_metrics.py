from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from pollreport.services.metrics import MetricsService, TTLCache, compute_metrics


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingCompute:
    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return f"value-{self.calls}"


@pytest.mark.asyncio
async def test_cache_serves_stored_value_within_ttl():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    compute = CountingCompute()

    assert await cache.get_or_compute(compute) == "value-1"
    clock.now += 59
    assert await cache.get_or_compute(compute) == "value-1"
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_cache_recomputes_after_ttl():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    compute = CountingCompute()

    await cache.get_or_compute(compute)
    clock.now += 60

    assert not cache.is_fresh()
    assert await cache.get_or_compute(compute) == "value-2"
    assert cache.generation == 2


@pytest.mark.asyncio
async def test_refresh_bypasses_fresh_value():
    cache = TTLCache(3600, clock=FakeClock())
    compute = CountingCompute()

    await cache.get_or_compute(compute)

    assert await cache.get_or_compute(compute, refresh=True) == "value-2"
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_computation():
    cache = TTLCache(3600)
    compute = CountingCompute(delay=0.01)

    results = await asyncio.gather(*(cache.get_or_compute(compute) for _ in range(5)))

    assert results == ["value-1"] * 5
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_repeated_refresh_with_frozen_clock_recomputes_each_time():
    cache = TTLCache(3600, clock=FakeClock())
    compute = CountingCompute()

    await cache.get_or_compute(compute)
    await cache.get_or_compute(compute, refresh=True)

    assert await cache.get_or_compute(compute, refresh=True) == "value-3"
    assert cache.generation == 3


@pytest.mark.asyncio
async def test_refresh_waiters_share_the_refreshed_value():
    cache = TTLCache(3600, clock=FakeClock())
    await cache.get_or_compute(CountingCompute())
    compute = CountingCompute(delay=0.01)

    results = await asyncio.gather(
        *(cache.get_or_compute(compute, refresh=True) for _ in range(3))
    )

    assert results == ["value-1"] * 3
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_compute_metrics_builds_four_charts():
    grouped = {
        "SourceCountry": [("United States", 120), ("France", 40)],
        "Domain": [("example.com", 30)],
        "Language": [("English", 150), ("French", 10)],
    }

    async def count_by(column, limit):
        assert limit == 20
        return grouped[column]

    with (
        patch("pollreport.services.metrics.db.count_polls", new=AsyncMock(return_value=160)),
        patch("pollreport.services.metrics.db.count_polls_by", new=AsyncMock(side_effect=count_by)),
        patch("pollreport.services.metrics.settings.metrics_top_n", 20),
    ):
        metrics = await compute_metrics()

    assert metrics.totalPolls.title == "Total Number of Polls"
    assert metrics.totalPolls.values == [160]
    assert metrics.countriesData.title == "Top 20 Countries by Poll Count"
    assert metrics.countriesData.labels == ["United States", "France"]
    assert metrics.countriesData.values == [120, 40]
    assert metrics.domainsData.x_label == "Domain"
    assert metrics.languagesData.labels == ["English", "French"]
    assert metrics.languagesData.chart_kind == "bar"


@pytest.mark.asyncio
async def test_metrics_service_caches_between_requests():
    compute = CountingCompute()
    service = MetricsService(cache=TTLCache(3600), compute=compute)

    await service.get()
    await service.get()
    await service.get(refresh=True)

    assert compute.calls == 2
