from __future__ import annotations

import random

import aiohttp
import pytest

from skyecache.config import RetrySettings
from skyecache.exceptions import (
    SkyeRateLimitError,
    SkyeTransientNetworkError,
    SkyeUpstreamError,
    SkyeValidationError,
)
from skyecache.retry import FailureKind, RetryPolicy, classify


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _policy(sleeps: _Sleeps, **settings) -> RetryPolicy:
    params = {"max_attempts": 3, "base_delay": 0.5, "max_delay": 4.0, "jitter": 0.0}
    params.update(settings)
    return RetryPolicy(RetrySettings(**params), sleep=sleeps, rng=random.Random(0))


def _failing(errors: list[Exception], result: str = "ok"):
    calls = {"n": 0}

    async def fn() -> str:
        calls["n"] += 1
        if errors:
            raise errors.pop(0)
        return result

    return fn, calls


def test_classify() -> None:
    assert classify(SkyeTransientNetworkError("x")) is FailureKind.TRANSIENT
    assert classify(TimeoutError()) is FailureKind.TRANSIENT
    assert classify(aiohttp.ClientConnectionError()) is FailureKind.TRANSIENT
    assert classify(SkyeRateLimitError("x")) is FailureKind.RATE_LIMITED
    assert classify(SkyeUpstreamError("x", status_code=404)) is FailureKind.NON_RETRYABLE
    assert classify(SkyeValidationError("x")) is FailureKind.NON_RETRYABLE
    assert classify(KeyError("x")) is FailureKind.NON_RETRYABLE


def test_backoff_is_exponential_and_capped() -> None:
    policy = _policy(_Sleeps(), base_delay=1.0, max_delay=3.0)
    assert policy.backoff_delay(1) == 1.0
    assert policy.backoff_delay(2) == 2.0
    assert policy.backoff_delay(3) == 3.0
    assert policy.backoff_delay(10) == 3.0


def test_backoff_jitter_is_bounded() -> None:
    policy = _policy(_Sleeps(), base_delay=1.0, jitter=0.5)
    for _ in range(20):
        assert 1.0 <= policy.backoff_delay(1) <= 1.5


@pytest.mark.asyncio
async def test_transient_errors_are_retried_until_success() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing([SkyeTransientNetworkError("a"), TimeoutError()])

    assert await _policy(sleeps).execute(fn) == "ok"
    assert calls["n"] == 3
    assert sleeps.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_exhausted_budget_raises_last_error_with_attempts() -> None:
    sleeps = _Sleeps()
    errors: list[Exception] = [SkyeTransientNetworkError(f"e{i}") for i in range(5)]
    fn, calls = _failing(errors)

    with pytest.raises(SkyeTransientNetworkError, match="e2") as exc_info:
        await _policy(sleeps).execute(fn)

    assert calls["n"] == 3
    assert exc_info.value.attempts == 3


@pytest.mark.asyncio
async def test_raw_client_error_is_wrapped_when_exhausted() -> None:
    fn, _ = _failing([aiohttp.ClientConnectionError("reset")])

    with pytest.raises(SkyeTransientNetworkError) as exc_info:
        await _policy(_Sleeps(), max_attempts=1).execute(fn, context="current fetch")

    assert exc_info.value.attempts == 1
    assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing([SkyeUpstreamError("bad request", status_code=400)])

    with pytest.raises(SkyeUpstreamError):
        await _policy(sleeps).execute(fn)

    assert calls["n"] == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after_once() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing(
        [
            SkyeRateLimitError("slow down", retry_after=2.0),
            SkyeRateLimitError("slow down again", retry_after=2.0),
        ]
    )

    with pytest.raises(SkyeRateLimitError, match="again") as exc_info:
        await _policy(sleeps, max_attempts=5).execute(fn)

    assert calls["n"] == 2
    assert sleeps.delays == [2.0]
    assert exc_info.value.attempts == 2


@pytest.mark.asyncio
async def test_rate_limit_hint_above_cap_surfaces_immediately() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing([SkyeRateLimitError("slow down", retry_after=60.0)])

    with pytest.raises(SkyeRateLimitError):
        await _policy(sleeps, max_retry_after=10.0).execute(fn)

    assert calls["n"] == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_rate_limit_without_hint_uses_backoff() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing([SkyeRateLimitError("slow down")])

    assert await _policy(sleeps).execute(fn) == "ok"
    assert calls["n"] == 2
    assert sleeps.delays == [0.5]


@pytest.mark.asyncio
async def test_max_attempts_override() -> None:
    fn, calls = _failing([SkyeTransientNetworkError("a")])

    with pytest.raises(SkyeTransientNetworkError):
        await _policy(_Sleeps()).execute(fn, max_attempts=1)

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_rate_limit_is_retried_even_with_single_attempt_budget() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing([SkyeRateLimitError("slow down", retry_after=1.0)])

    assert await _policy(sleeps, max_attempts=1).execute(fn) == "ok"
    assert calls["n"] == 2
    assert sleeps.delays == [1.0]


@pytest.mark.asyncio
async def test_rate_limit_retry_does_not_use_up_transient_attempts() -> None:
    sleeps = _Sleeps()
    fn, calls = _failing(
        [
            SkyeRateLimitError("slow down", retry_after=1.0),
            SkyeTransientNetworkError("reset"),
        ]
    )

    assert await _policy(sleeps, max_attempts=2).execute(fn) == "ok"
    assert calls["n"] == 3
    assert sleeps.delays == [1.0, 1.0]
