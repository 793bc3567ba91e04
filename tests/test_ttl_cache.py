from __future__ import annotations

import asyncio

import pytest

from skyecache._cache import CacheKey, TTLCache
from skyecache.models.cache import DataKind, UnitSystem

KEY = CacheKey("loc-1", DataKind.CURRENT, UnitSystem.METRIC)


def test_get_returns_copy_until_expiry(clock) -> None:
    cache = TTLCache(clock=clock)
    payload = {"main": {"temp": 12.5}}
    cache.put(KEY, payload, 600)

    payload["main"]["temp"] = 99.0
    first = cache.get(KEY)
    assert first == {"main": {"temp": 12.5}}

    first["main"]["temp"] = -1.0
    assert cache.get(KEY) == {"main": {"temp": 12.5}}

    clock.advance(599)
    assert cache.get(KEY) is not None

    clock.advance(1)
    assert cache.get(KEY) is None
    assert len(cache) == 0


def test_put_with_insertion_time_keeps_original_expiry(clock) -> None:
    cache = TTLCache(clock=clock)
    written = clock.now
    clock.advance(500)

    cache.put(KEY, {"v": 1}, 600, inserted_at=written)
    entry = cache.get_entry(KEY)
    assert entry is not None
    assert entry.inserted_at == written
    assert (entry.expires_at - clock.now).total_seconds() == 100

    clock.advance(100)
    assert cache.get(KEY) is None


def test_non_positive_ttl_is_not_stored(clock) -> None:
    cache = TTLCache(clock=clock)
    cache.put(KEY, {"v": 1}, 0)
    assert cache.get(KEY) is None


def test_invalidate_by_location_and_kind(clock) -> None:
    cache = TTLCache(clock=clock)
    forecast = CacheKey("loc-1", DataKind.FORECAST, UnitSystem.METRIC)
    imperial = CacheKey("loc-1", DataKind.CURRENT, UnitSystem.IMPERIAL)
    other = CacheKey("loc-2", DataKind.CURRENT, UnitSystem.METRIC)
    for key in (KEY, forecast, imperial, other):
        cache.put(key, {"k": str(key)}, 600)

    assert cache.invalidate("loc-1", DataKind.CURRENT) == 2
    assert cache.get(forecast) is not None
    assert cache.get(other) is not None

    assert cache.invalidate("loc-1") == 1
    assert len(cache) == 1


def test_sweep_removes_only_expired(clock) -> None:
    cache = TTLCache(clock=clock)
    short = CacheKey("loc-2", DataKind.CURRENT, UnitSystem.METRIC)
    cache.put(KEY, {"v": 1}, 600)
    cache.put(short, {"v": 2}, 60)

    clock.advance(120)
    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get(KEY) == {"v": 1}


@pytest.mark.asyncio
async def test_run_sweeper_sweeps_until_cancelled(clock) -> None:
    cache = TTLCache(clock=clock)
    cache.put(KEY, {"v": 1}, 1)
    clock.advance(5)

    task = asyncio.create_task(cache.run_sweeper(0.01))
    for _ in range(50):
        await asyncio.sleep(0.01)
        if len(cache) == 0:
            break
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(cache) == 0
