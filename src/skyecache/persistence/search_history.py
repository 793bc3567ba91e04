"""Search history rows."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from skyecache.models._base import to_epoch, utcnow
from skyecache.models.search import SearchHistoryItem, SearchType
from skyecache.persistence.connection import Database


class SearchHistoryRepository:
    def __init__(
        self,
        database: Database,
        *,
        scope: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = database
        self._scope = scope
        self._clock = clock

    def add(
        self,
        query: str,
        *,
        location_id: str | None = None,
        search_type: SearchType | str = SearchType.MANUAL,
    ) -> SearchHistoryItem:
        item = SearchHistoryItem(
            id=uuid.uuid4().hex,
            scope=self._scope,
            query=query,
            location_id=location_id,
            search_type=SearchType(search_type),
            created_at=self._clock(),
        )
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO search_history (id, scope, query, location_id, search_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.scope,
                    item.query,
                    item.location_id,
                    item.search_type.value,
                    to_epoch(item.created_at),
                ),
            )
        return item

    def history(self, limit: int) -> list[SearchHistoryItem]:
        with self._db.read() as conn:
            rows = conn.execute(
                """
                SELECT id, scope, query, location_id, search_type, created_at
                FROM search_history
                WHERE scope = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (self._scope, limit),
            ).fetchall()
        return [
            SearchHistoryItem(
                id=row["id"],
                scope=row["scope"],
                query=row["query"],
                location_id=row["location_id"],
                search_type=row["search_type"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def recent_queries(self, limit: int) -> list[str]:
        """Distinct queries, most recently used first."""
        with self._db.read() as conn:
            rows = conn.execute(
                """
                SELECT query, MAX(created_at) AS last_used, MAX(rowid) AS last_row
                FROM search_history
                WHERE scope = ?
                GROUP BY query
                ORDER BY last_used DESC, last_row DESC
                LIMIT ?
                """,
                (self._scope, limit),
            ).fetchall()
        return [row["query"] for row in rows]

    def clear(self) -> int:
        with self._db.transaction() as conn:
            return conn.execute("DELETE FROM search_history WHERE scope = ?", (self._scope,)).rowcount
