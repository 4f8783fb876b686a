"""Tests for the provider retry loop."""

import pytest

from conftest import SleepRecorder
from ledger_assistant.ai.retry import RetryPolicy, call_with_retry
from ledger_assistant.errors import ErrorKind, UpstreamError


class Flaky:
    """Fails with the given kinds in order, then returns "ok"."""

    def __init__(self, *kinds: ErrorKind):
        self.kinds = list(kinds)
        self.attempts = 0

    async def __call__(self) -> str:
        self.attempts += 1
        if self.kinds:
            raise UpstreamError(self.kinds.pop(0), "boom")
        return "ok"


async def test_rate_limit_backoff_doubles_from_base():
    """Three rate limits then success waits base + 2*base + 4*base."""
    sleep = SleepRecorder()
    operation = Flaky(ErrorKind.RATE_LIMITED, ErrorKind.RATE_LIMITED, ErrorKind.RATE_LIMITED)

    result = await call_with_retry(operation, RetryPolicy(max_attempts=4, base_delay=0.5), sleep=sleep)

    assert result == "ok"
    assert operation.attempts == 4
    assert sleep.delays == [0.5, 1.0, 2.0]
    assert sleep.total == pytest.approx(0.5 + 2 * 0.5 + 4 * 0.5)


async def test_transient_backoff_is_gentler():
    sleep = SleepRecorder()
    operation = Flaky(ErrorKind.TRANSIENT, ErrorKind.TRANSIENT)

    await call_with_retry(operation, RetryPolicy(max_attempts=3, base_delay=1.0), sleep=sleep)

    assert sleep.delays == pytest.approx([1.0, 1.5])


async def test_budget_exhausted_reraises_last_error():
    sleep = SleepRecorder()
    operation = Flaky(ErrorKind.TRANSIENT, ErrorKind.RATE_LIMITED, ErrorKind.RATE_LIMITED)

    with pytest.raises(UpstreamError) as excinfo:
        await call_with_retry(operation, RetryPolicy(max_attempts=3, base_delay=1.0), sleep=sleep)

    assert excinfo.value.kind is ErrorKind.RATE_LIMITED
    assert operation.attempts == 3
    # One shared delay: 1.0 (transient) -> 1.5, then doubled for the rate limit.
    assert sleep.delays == pytest.approx([1.0, 1.5])


async def test_fatal_error_is_not_retried():
    sleep = SleepRecorder()
    operation = Flaky(ErrorKind.FATAL)

    with pytest.raises(UpstreamError):
        await call_with_retry(operation, RetryPolicy(max_attempts=5), sleep=sleep)

    assert operation.attempts == 1
    assert sleep.delays == []


async def test_other_exceptions_propagate_untouched():
    async def broken():
        raise KeyError("x")

    with pytest.raises(KeyError):
        await call_with_retry(broken, RetryPolicy(), sleep=SleepRecorder())


def test_retryable_kinds():
    assert ErrorKind.RATE_LIMITED.retryable
    assert ErrorKind.TRANSIENT.retryable
    assert not ErrorKind.FATAL.retryable
    assert not ErrorKind.TIMEOUT.retryable
