"""Durable weather cache keyed by ``(location_id, kind)``."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from skyecache.exceptions import SkyeCacheUnavailableError, SkyeValidationError
from skyecache.models._base import to_epoch, utcnow
from skyecache.models.cache import CacheEntry, DataKind, UnitSystem
from skyecache.persistence.connection import Database

_logger = logging.getLogger(__name__)

_COLUMNS = "location_id, kind, unit_system, payload, written_at, expires_at"


def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
    try:
        payload = json.loads(row["payload"])
    except (TypeError, json.JSONDecodeError) as exc:
        raise SkyeCacheUnavailableError(
            f"Corrupt cache payload for {row['location_id']}/{row['kind']}"
        ) from exc
    if not isinstance(payload, dict):
        raise SkyeCacheUnavailableError(f"Cache payload for {row['location_id']}/{row['kind']} is not an object")
    return CacheEntry(
        location_id=row["location_id"],
        kind=row["kind"],
        unit_system=row["unit_system"],
        payload=payload,
        written_at=row["written_at"],
        expires_at=row["expires_at"],
    )


class PersistentStore:
    """Upsert-only cache table with read-time freshness.

    Entries are returned whether fresh or stale; callers decide with
    :meth:`CacheEntry.is_fresh`.  Expired rows stay until superseded,
    deleted or swept.
    """

    def __init__(self, database: Database, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._db = database
        self._clock = clock

    def get(
        self,
        location_id: str,
        kind: DataKind | str,
        unit_system: UnitSystem | str | None = None,
    ) -> CacheEntry | None:
        """Return the entry for a key, or ``None``.

        When *unit_system* is given, an entry stored in other units is a miss.
        """
        kind = DataKind(kind)
        with self._db.read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM weather_cache WHERE location_id = ? AND kind = ?",
                (location_id, kind.value),
            ).fetchone()
        if row is None:
            return None
        entry = _row_to_entry(row)
        if unit_system is not None and entry.unit_system != UnitSystem(unit_system):
            return None
        return entry

    def put(
        self,
        location_id: str,
        kind: DataKind | str,
        payload: Mapping[str, Any],
        ttl: float,
        unit_system: UnitSystem | str = UnitSystem.METRIC,
    ) -> CacheEntry:
        """Insert or overwrite the entry for ``(location_id, kind)``."""
        kind = DataKind(kind)
        unit_system = UnitSystem(unit_system)
        if ttl <= 0:
            raise SkyeValidationError(f"ttl must be positive, got {ttl}")
        if not isinstance(payload, Mapping):
            raise SkyeValidationError(f"payload must be a JSON object, got {type(payload).__name__}")
        try:
            body = json.dumps(dict(payload), separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise SkyeValidationError(f"payload is not JSON serialisable: {exc}") from exc

        now = self._clock()
        expires_at = now + timedelta(seconds=ttl)
        with self._db.transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO weather_cache ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (location_id, kind) DO UPDATE SET
                    unit_system = excluded.unit_system,
                    payload = excluded.payload,
                    written_at = excluded.written_at,
                    expires_at = excluded.expires_at
                """,
                (location_id, kind.value, unit_system.value, body, to_epoch(now), to_epoch(expires_at)),
            )
        return CacheEntry(
            location_id=location_id,
            kind=kind,
            unit_system=unit_system,
            payload=json.loads(body),
            written_at=now,
            expires_at=expires_at,
        )

    def delete(self, location_id: str, kind: DataKind | str | None = None) -> int:
        with self._db.transaction() as conn:
            if kind is None:
                cursor = conn.execute("DELETE FROM weather_cache WHERE location_id = ?", (location_id,))
            else:
                cursor = conn.execute(
                    "DELETE FROM weather_cache WHERE location_id = ? AND kind = ?",
                    (location_id, DataKind(kind).value),
                )
            return cursor.rowcount

    def sweep_expired(self) -> int:
        """Delete entries whose freshness window ended before now.

        A single ``DELETE`` statement: a concurrent :meth:`get` sees either
        the whole row or no row.
        """
        cutoff = to_epoch(self._clock())
        with self._db.transaction() as conn:
            removed = conn.execute("DELETE FROM weather_cache WHERE expires_at < ?", (cutoff,)).rowcount
        if removed:
            _logger.debug("Swept %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        with self._db.transaction() as conn:
            return conn.execute("DELETE FROM weather_cache").rowcount

    def count(self, *, fresh_only: bool = False) -> int:
        with self._db.read() as conn:
            if fresh_only:
                row = conn.execute(
                    "SELECT COUNT(*) FROM weather_cache WHERE expires_at > ?",
                    (to_epoch(self._clock()),),
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM weather_cache").fetchone()
        return int(row[0])
