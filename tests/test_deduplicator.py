from __future__ import annotations

import asyncio

import pytest

from skyecache._dedup import Deduplicator


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_execution() -> None:
    dedup = Deduplicator()
    calls = 0
    release = asyncio.Event()

    async def work() -> dict[str, int]:
        nonlocal calls
        calls += 1
        await release.wait()
        return {"value": 42}

    tasks = [asyncio.create_task(dedup.run_exclusive("k", work)) for _ in range(10)]
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert dedup.in_flight("k")
    assert dedup.waiters("k") == 10

    release.set()
    results = await asyncio.gather(*tasks)

    assert calls == 1
    assert all(result == {"value": 42} for result in results)
    assert not dedup.in_flight("k")
    assert len(dedup) == 0


@pytest.mark.asyncio
async def test_error_is_shared_and_key_released() -> None:
    dedup = Deduplicator()
    release = asyncio.Event()

    async def boom() -> None:
        await release.wait()
        raise RuntimeError("upstream down")

    tasks = [asyncio.create_task(dedup.run_exclusive("k", boom)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(outcome, RuntimeError) for outcome in outcomes)
    assert len({id(outcome) for outcome in outcomes}) == 1
    assert not dedup.in_flight("k")

    async def ok() -> str:
        return "recovered"

    assert await dedup.run_exclusive("k", ok) == "recovered"


@pytest.mark.asyncio
async def test_distinct_keys_run_independently() -> None:
    dedup = Deduplicator()
    calls: list[str] = []

    def make(name: str):
        async def work() -> str:
            calls.append(name)
            await asyncio.sleep(0)
            return name

        return work

    results = await asyncio.gather(
        dedup.run_exclusive("a", make("a")),
        dedup.run_exclusive("b", make("b")),
    )

    assert results == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_work() -> None:
    dedup = Deduplicator()
    release = asyncio.Event()
    finished = asyncio.Event()

    async def work() -> str:
        await release.wait()
        finished.set()
        return "done"

    first = asyncio.create_task(dedup.run_exclusive("k", work))
    second = asyncio.create_task(dedup.run_exclusive("k", work))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    release.set()
    assert await second == "done"
    assert finished.is_set()
    assert not dedup.in_flight("k")


@pytest.mark.asyncio
async def test_cancel_all_releases_keys() -> None:
    dedup = Deduplicator()

    async def forever() -> None:
        await asyncio.Event().wait()

    caller = asyncio.create_task(dedup.run_exclusive("k", forever))
    await asyncio.sleep(0)
    assert dedup.in_flight("k")

    await dedup.cancel_all()

    with pytest.raises(asyncio.CancelledError):
        await caller
    assert len(dedup) == 0
