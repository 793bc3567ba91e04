"""SQLite connection, schema and transaction boundaries.

One :class:`Database` per process owns the connection.  All statements
run under its re-entrant lock, and every write goes through
:meth:`Database.transaction`, which opens ``BEGIN IMMEDIATE`` so a
read-modify-write (resolve, set-current, upsert) is atomic.

Any ``sqlite3.Error`` escaping a block is rolled back and re-raised as
:class:`~skyecache.exceptions.SkyeCacheUnavailableError`.  A database that
cannot be opened is logged and left unavailable; every operation on it
raises that same error.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

from skyecache.exceptions import SkyeCacheUnavailableError

_logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS locations (
    id TEXT PRIMARY KEY,
    scope TEXT NOT NULL,
    name TEXT NOT NULL,
    country TEXT NOT NULL DEFAULT '',
    region TEXT,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    lat_key INTEGER NOT NULL,
    lon_key INTEGER NOT NULL,
    is_current INTEGER NOT NULL DEFAULT 0,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    search_count INTEGER NOT NULL DEFAULT 0,
    last_accessed_at REAL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    UNIQUE (scope, lat_key, lon_key)
);

CREATE TABLE IF NOT EXISTS weather_cache (
    location_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    unit_system TEXT NOT NULL,
    payload TEXT NOT NULL,
    written_at REAL NOT NULL,
    expires_at REAL NOT NULL,
    PRIMARY KEY (location_id, kind),
    FOREIGN KEY (location_id) REFERENCES locations (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS search_history (
    id TEXT PRIMARY KEY,
    scope TEXT NOT NULL,
    query TEXT NOT NULL,
    location_id TEXT,
    search_type TEXT NOT NULL DEFAULT 'manual',
    created_at REAL NOT NULL,
    FOREIGN KEY (location_id) REFERENCES locations (id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_locations_scope_current
    ON locations (scope, is_current) WHERE is_current = 1;

CREATE INDEX IF NOT EXISTS idx_locations_scope_favorite
    ON locations (scope, is_favorite) WHERE is_favorite = 1;

CREATE INDEX IF NOT EXISTS idx_locations_scope_coords
    ON locations (scope, latitude, longitude);

CREATE INDEX IF NOT EXISTS idx_weather_cache_expires
    ON weather_cache (expires_at);

CREATE INDEX IF NOT EXISTS idx_search_history_scope
    ON search_history (scope, created_at);
"""


class Database:
    """Serialized access to the embedded SQLite store."""

    def __init__(self, path: str | Path = MEMORY_PATH) -> None:
        self.path = str(path)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._open_error: str | None = None
        self._open()

    def _open(self) -> None:
        conn: sqlite3.Connection | None = None
        try:
            if self.path != MEMORY_PATH:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode: transactions are opened explicitly below.
            conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if self.path != MEMORY_PATH:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            if conn is not None:
                conn.close()
            self._open_error = str(exc)
            _logger.warning("Cannot open cache database %s, running without persistence: %s", self.path, exc)
            return
        self._conn = conn
        _logger.debug("Cache database ready: %s", self.path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._open_error is not None:
                raise SkyeCacheUnavailableError(f"Cache database {self.path} could not be opened: {self._open_error}")
            raise SkyeCacheUnavailableError(f"Cache database {self.path} is closed")
        return self._conn

    @contextlib.contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Run read-only statements under the lock."""
        with self._lock:
            conn = self._require()
            try:
                yield conn
            except sqlite3.Error as exc:
                raise SkyeCacheUnavailableError(f"Cache read failed: {exc}") from exc

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements in one ``BEGIN IMMEDIATE`` transaction.

        Nested use joins the outer transaction.
        """
        with self._lock:
            conn = self._require()
            if conn.in_transaction:
                yield conn
                return
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise SkyeCacheUnavailableError(f"Cannot begin cache transaction: {exc}") from exc
            try:
                yield conn
            except BaseException as exc:
                with contextlib.suppress(sqlite3.Error):
                    conn.execute("ROLLBACK")
                if isinstance(exc, sqlite3.Error):
                    raise SkyeCacheUnavailableError(f"Cache write failed: {exc}") from exc
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                with contextlib.suppress(sqlite3.Error):
                    conn.execute("ROLLBACK")
                raise SkyeCacheUnavailableError(f"Cache commit failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            conn = self._conn
            self._conn = None
            if conn is not None:
                conn.close()
                _logger.debug("Cache database closed: %s", self.path)
