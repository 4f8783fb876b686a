"""Retry with backoff for calls to the LLM provider."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ledger_assistant.errors import ErrorKind, UpstreamError
from ledger_assistant.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt cap and backoff shape.

    Rate limits double the delay after each wait, transient failures grow it by
    half. Both share one running delay and one attempt budget.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    rate_limit_multiplier: float = 2.0
    transient_multiplier: float = 1.5

    def next_delay(self, delay: float, kind: ErrorKind) -> float:
        if kind is ErrorKind.RATE_LIMITED:
            return delay * self.rate_limit_multiplier
        return delay * self.transient_multiplier


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or fails in a way that must not be retried.

    Only :class:`UpstreamError` with a retryable kind is retried. When the
    budget runs out the last error is re-raised unchanged, so the caller sees
    the classification of the final failure.
    """
    delay = policy.base_delay
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except UpstreamError as e:
            if not e.kind.retryable or attempt == policy.max_attempts:
                raise
            logger.warning(
                "upstream_retry",
                error_kind=e.kind.value,
                status_code=e.status_code,
                attempt=attempt,
                delay=delay,
            )
            await sleep(delay)
            delay = policy.next_delay(delay, e.kind)
    raise RuntimeError("RetryPolicy.max_attempts must be at least 1")
