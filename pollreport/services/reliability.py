"""Retry and timeout combinators for outbound calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from pollreport.errors import UpstreamTimeoutError
from pollreport.services.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: the wait before retry n is `base_delay * n`."""

    attempts: int = 3
    base_delay: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    never_retry: tuple[type[BaseException], ...] = (UpstreamTimeoutError,)
    name: str = "operation"

    def should_retry(self, exc: BaseException) -> bool:
        if isinstance(exc, self.never_retry):
            return False
        return isinstance(exc, self.retry_on)


def _log_before_sleep(policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            f"{policy.name} attempt {state.attempt_number}/{policy.attempts} failed "
            f"({type(exc).__name__}: {exc}); retrying in {delay:.1f}s"
        )

    return before_sleep


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> T:
    """Run `operation` until it succeeds or the policy gives up.

    Exceptions the policy does not retry propagate immediately; once
    attempts are exhausted the last exception is re-raised unchanged.
    """
    if sleep is None:
        sleep = _sleep
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(policy.attempts, 1)),
        wait=wait_incrementing(start=policy.base_delay, increment=policy.base_delay),
        retry=retry_if_exception(policy.should_retry),
        before_sleep=_log_before_sleep(policy),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover


async def with_timeout(awaitable: Awaitable[T], seconds: float, *, what: str = "request") -> T:
    """Await `awaitable`, cancelling it and raising UpstreamTimeoutError after `seconds`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(f"{what} timed out after {seconds:g}s") from exc
