"""Single-flight execution of concurrent identical requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass
class _InFlight:
    future: asyncio.Future[Any]
    task: asyncio.Task[None]
    waiters: int = 0


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Mark the exception retrieved when every waiter went away.
    if not future.cancelled():
        future.exception()


class Deduplicator:
    """At most one running execution per key; concurrent callers share it.

    The first caller for a key starts ``fn()`` in its own task.  Later
    callers with the same key join the pending future and receive the
    identical result or exception.  The key is released before waiters
    resume, whether ``fn`` succeeded, raised or was cancelled.  A caller
    being cancelled does not cancel the shared execution.
    """

    def __init__(self) -> None:
        self._in_flight: dict[Hashable, _InFlight] = {}

    async def run_exclusive(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        record = self._in_flight.get(key)
        if record is None:
            loop = asyncio.get_running_loop()
            future: asyncio.Future[Any] = loop.create_future()
            future.add_done_callback(_consume_exception)
            task = loop.create_task(self._drive(key, future, fn))
            record = _InFlight(future=future, task=task)
            self._in_flight[key] = record
        else:
            _logger.debug("Joining in-flight request for %s", key)
        record.waiters += 1
        try:
            return await asyncio.shield(record.future)
        finally:
            record.waiters -= 1

    async def _drive(
        self,
        key: Hashable,
        future: asyncio.Future[Any],
        fn: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            result = await fn()
        except asyncio.CancelledError:
            self._release(key, future)
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            self._release(key, future)
            if not future.done():
                future.set_exception(exc)
        else:
            self._release(key, future)
            if not future.done():
                future.set_result(result)

    def _release(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        record = self._in_flight.get(key)
        if record is not None and record.future is future:
            del self._in_flight[key]

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    def waiters(self, key: Hashable) -> int:
        record = self._in_flight.get(key)
        return record.waiters if record is not None else 0

    async def cancel_all(self) -> None:
        """Cancel every running execution and wait for it to settle."""
        tasks = [record.task for record in self._in_flight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._in_flight)
