from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from pollreport.errors import UpstreamError, UpstreamRateLimitError, UpstreamTimeoutError
from pollreport.services.reliability import RetryPolicy, with_retry, with_timeout


class FlakyOperation:
    def __init__(self, failures: list[Exception], result: str = "ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_with_retry_backs_off_linearly_until_success():
    operation = FlakyOperation([UpstreamRateLimitError(), UpstreamRateLimitError()])
    sleep = AsyncMock()
    policy = RetryPolicy(attempts=3, base_delay=1.5, retry_on=(UpstreamRateLimitError,))

    result = await with_retry(operation, policy, sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.await_args_list == [call(1.5), call(3.0)]


@pytest.mark.asyncio
async def test_with_retry_reraises_last_error_when_exhausted():
    operation = FlakyOperation([UpstreamRateLimitError("first"), UpstreamRateLimitError("second")])
    policy = RetryPolicy(attempts=2, base_delay=0.0, retry_on=(UpstreamRateLimitError,))

    with pytest.raises(UpstreamRateLimitError, match="second"):
        await with_retry(operation, policy, sleep=AsyncMock())

    assert operation.calls == 2


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_other_errors():
    operation = FlakyOperation([UpstreamError("boom")])
    sleep = AsyncMock()
    policy = RetryPolicy(attempts=3, base_delay=1.0, retry_on=(UpstreamRateLimitError,))

    with pytest.raises(UpstreamError, match="boom"):
        await with_retry(operation, policy, sleep=sleep)

    assert operation.calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_with_retry_never_retries_timeouts_even_when_retrying_everything():
    operation = FlakyOperation([UpstreamTimeoutError()])
    policy = RetryPolicy(attempts=5, base_delay=1.0, retry_on=(Exception,))

    with pytest.raises(UpstreamTimeoutError):
        await with_retry(operation, policy, sleep=AsyncMock())

    assert operation.calls == 1


@pytest.mark.asyncio
async def test_with_timeout_returns_result_of_fast_call():
    async def fast():
        return 7

    assert await with_timeout(fast(), 1.0) == 7


@pytest.mark.asyncio
async def test_with_timeout_cancels_hung_call_with_timeout_error():
    cancelled = asyncio.Event()

    async def hang():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(UpstreamTimeoutError, match="timed out"):
        await with_timeout(hang(), 0.05, what="generation")

    assert cancelled.is_set()
