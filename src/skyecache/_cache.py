"""In-memory TTL cache in front of the persistent store."""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, NamedTuple

from skyecache.models._base import utcnow
from skyecache.models.cache import DataKind, UnitSystem
from skyecache.state.policy import is_expired

_logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    location_id: str
    kind: DataKind
    unit_system: UnitSystem


@dataclass
class MemoryCacheEntry:
    """Cached payload with its insertion time and lifetime."""

    payload: dict[str, Any]
    inserted_at: datetime
    ttl: float

    @property
    def expires_at(self) -> datetime:
        return self.inserted_at + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime) -> bool:
        return is_expired(now, self.expires_at)


class TTLCache:
    """``(location_id, kind, unit_system)`` to payload, each entry with its own TTL.

    Expiry is re-checked on every read; :meth:`sweep` only reclaims
    memory.  Payloads are deep-copied in and out.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, MemoryCacheEntry] = {}

    def get(self, key: CacheKey) -> dict[str, Any] | None:
        entry = self.get_entry(key)
        return entry.payload if entry is not None else None

    def get_entry(self, key: CacheKey) -> MemoryCacheEntry | None:
        """Return a copy of the live entry for *key*, or ``None``."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return MemoryCacheEntry(copy.deepcopy(entry.payload), entry.inserted_at, entry.ttl)

    def put(
        self,
        key: CacheKey,
        payload: dict[str, Any],
        ttl: float,
        *,
        inserted_at: datetime | None = None,
    ) -> None:
        """Store a copy of *payload*; it expires ``ttl`` seconds after *inserted_at*."""
        if ttl <= 0:
            return
        entry = MemoryCacheEntry(copy.deepcopy(payload), inserted_at or self._clock(), ttl)
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, location_id: str, kind: DataKind | str | None = None) -> int:
        """Drop entries for a location, optionally only one kind (all units)."""
        kind = DataKind(kind) if kind is not None else None
        with self._lock:
            doomed = [
                key
                for key in self._entries
                if key.location_id == location_id and (kind is None or key.kind is kind)
            ]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            _logger.debug("Swept %d expired memory cache entries", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float) -> None:
        """Sweep every *interval* seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
