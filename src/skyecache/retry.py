"""Bounded retry with exponential backoff for remote fetches."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TypeVar

import aiohttp

from skyecache.config import RetrySettings
from skyecache.exceptions import (
    SkyeRateLimitError,
    SkyeTransientNetworkError,
    SkyeTransportError,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureKind(StrEnum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    NON_RETRYABLE = "non_retryable"


def classify(exc: BaseException) -> FailureKind:
    """Decide how a fetch failure is retried."""
    if isinstance(exc, SkyeRateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(exc, (SkyeTransientNetworkError, TimeoutError, aiohttp.ClientError)):
        return FailureKind.TRANSIENT
    return FailureKind.NON_RETRYABLE


def _as_typed(exc: Exception, context: str) -> SkyeTransportError | Exception:
    if isinstance(exc, SkyeTransportError):
        return exc
    if isinstance(exc, TimeoutError):
        return SkyeTransientNetworkError(f"Request timed out: {context or 'fetch'}", endpoint=context)
    if isinstance(exc, aiohttp.ClientError):
        return SkyeTransientNetworkError(f"Request failed: {exc}", endpoint=context)
    return exc


class RetryPolicy:
    """Run a coroutine factory with bounded, classified retries.

    Parameters
    ----------
    settings : RetrySettings
        Attempt budget and backoff parameters.
    sleep : callable
        Awaitable sleep, injectable for tests.
    rng : random.Random or None
        Source of jitter.
    """

    def __init__(
        self,
        settings: RetrySettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or RetrySettings()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def settings(self) -> RetrySettings:
        return self._settings

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number *attempt* (1-based)."""
        s = self._settings
        delay = min(s.base_delay * s.backoff_multiplier ** (attempt - 1), s.max_delay)
        if s.jitter:
            delay += delay * s.jitter * self._rng.random()
        return delay

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        max_attempts: int | None = None,
        context: str = "",
    ) -> T:
        """Await ``fn()`` until it succeeds or the failure is final.

        Raises
        ------
        SkyeTransportError
            The last failure, with ``attempts`` set, once the budget is
            spent or a rate-limit hint exceeds ``max_retry_after``.
        Exception
            Any non-retryable error, unchanged and on the first attempt.
        """
        budget = max_attempts if max_attempts is not None else self._settings.max_attempts
        budget = max(1, budget)
        rate_limit_retried = False
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                kind = classify(exc)
                if kind is FailureKind.NON_RETRYABLE:
                    raise

                typed = _as_typed(exc, context)
                if isinstance(typed, SkyeTransportError):
                    typed.attempts = attempt

                delay: float | None
                if kind is FailureKind.RATE_LIMITED:
                    # One rate-limit retry is allowed on top of the attempt budget.
                    delay = self._rate_limit_delay(exc, attempt, rate_limit_retried)
                    if delay is not None:
                        budget += 1
                    rate_limit_retried = True
                elif attempt >= budget:
                    delay = None
                else:
                    delay = self.backoff_delay(attempt)

                if delay is None:
                    _logger.debug("Giving up on %s after %d attempt(s): %s", context or "fetch", attempt, exc)
                    if typed is exc:
                        raise
                    raise typed from exc

                _logger.info(
                    "%s failed (attempt %d/%d, %s), retrying in %.2fs",
                    context or "Fetch",
                    attempt,
                    budget,
                    kind.value,
                    delay,
                )
                await self._sleep(delay)

    def _rate_limit_delay(self, exc: Exception, attempt: int, already_retried: bool) -> float | None:
        if already_retried:
            return None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is None:
            return self.backoff_delay(attempt)
        if retry_after > self._settings.max_retry_after:
            return None
        return max(0.0, float(retry_after))
