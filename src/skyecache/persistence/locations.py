"""Location rows: proximity lookup, atomic insert-or-touch, flags and text search."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime

from skyecache._constants import UNKNOWN_LOCATION_NAME
from skyecache.models._base import to_epoch, utcnow
from skyecache.models.location import Location, LocationHint
from skyecache.persistence.connection import Database

_COLUMNS = (
    "id, scope, name, country, region, latitude, longitude, is_current, is_favorite, "
    "search_count, last_accessed_at, created_at, updated_at"
)


def _row_to_location(row: sqlite3.Row) -> Location:
    return Location(
        id=row["id"],
        scope=row["scope"],
        name=row["name"],
        country=row["country"],
        region=row["region"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        is_current=bool(row["is_current"]),
        is_favorite=bool(row["is_favorite"]),
        search_count=row["search_count"],
        last_accessed_at=row["last_accessed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def quantize(value: float, tolerance: float) -> int:
    """Bucket a coordinate to the tolerance grid."""
    return round(value / tolerance)


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class LocationRepository:
    """SQL access to the ``locations`` table for one owner scope."""

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

    @property
    def scope(self) -> str:
        return self._scope

    def _nearest(
        self,
        conn: sqlite3.Connection,
        latitude: float,
        longitude: float,
        tolerance: float,
    ) -> sqlite3.Row | None:
        return conn.execute(
            f"""
            SELECT {_COLUMNS} FROM locations
            WHERE scope = ?
              AND latitude BETWEEN ? AND ?
              AND longitude BETWEEN ? AND ?
            ORDER BY (latitude - ?) * (latitude - ?) + (longitude - ?) * (longitude - ?)
            LIMIT 1
            """,
            (
                self._scope,
                latitude - tolerance,
                latitude + tolerance,
                longitude - tolerance,
                longitude + tolerance,
                latitude,
                latitude,
                longitude,
                longitude,
            ),
        ).fetchone()

    def find_nearest(self, latitude: float, longitude: float, tolerance: float) -> Location | None:
        with self._db.read() as conn:
            row = self._nearest(conn, latitude, longitude, tolerance)
        return _row_to_location(row) if row is not None else None

    def touch_or_create(
        self,
        latitude: float,
        longitude: float,
        tolerance: float,
        hint: LocationHint | None = None,
    ) -> Location:
        """Return the location within tolerance, creating it on first sighting.

        Runs in one transaction.  The quantized-key uniqueness constraint
        turns a racing insert into the same bucket into a touch.
        """
        now = to_epoch(self._clock())
        hint = hint or LocationHint()
        with self._db.transaction() as conn:
            row = self._nearest(conn, latitude, longitude, tolerance)
            if row is not None:
                location_id = row["id"]
                name = row["name"]
                if hint.name and name == UNKNOWN_LOCATION_NAME:
                    name = hint.name
                country = row["country"] or hint.country or ""
                region = row["region"] or hint.region
                conn.execute(
                    """
                    UPDATE locations
                    SET search_count = search_count + 1,
                        last_accessed_at = ?,
                        updated_at = ?,
                        name = ?,
                        country = ?,
                        region = ?
                    WHERE id = ?
                    """,
                    (now, now, name, country, region, location_id),
                )
            else:
                lat_key = quantize(latitude, tolerance)
                lon_key = quantize(longitude, tolerance)
                conn.execute(
                    f"""
                    INSERT INTO locations ({_COLUMNS}, lat_key, lon_key)
                    VALUES (?, ?, ?, ?, ?, ?, ?, 0, 0, 1, ?, ?, ?, ?, ?)
                    ON CONFLICT (scope, lat_key, lon_key) DO UPDATE SET
                        search_count = search_count + 1,
                        last_accessed_at = excluded.last_accessed_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        uuid.uuid4().hex,
                        self._scope,
                        hint.name or UNKNOWN_LOCATION_NAME,
                        hint.country or "",
                        hint.region,
                        latitude,
                        longitude,
                        now,
                        now,
                        now,
                        lat_key,
                        lon_key,
                    ),
                )
                location_id = conn.execute(
                    "SELECT id FROM locations WHERE scope = ? AND lat_key = ? AND lon_key = ?",
                    (self._scope, lat_key, lon_key),
                ).fetchone()["id"]
            row = conn.execute(f"SELECT {_COLUMNS} FROM locations WHERE id = ?", (location_id,)).fetchone()
        return _row_to_location(row)

    def get(self, location_id: str) -> Location | None:
        with self._db.read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM locations WHERE id = ? AND scope = ?",
                (location_id, self._scope),
            ).fetchone()
        return _row_to_location(row) if row is not None else None

    def get_current(self) -> Location | None:
        with self._db.read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM locations WHERE scope = ? AND is_current = 1 LIMIT 1",
                (self._scope,),
            ).fetchone()
        return _row_to_location(row) if row is not None else None

    def set_current(self, location_id: str) -> bool:
        """Move the current flag to *location_id*.  ``False`` if it does not exist."""
        now = to_epoch(self._clock())
        with self._db.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM locations WHERE id = ? AND scope = ?",
                (location_id, self._scope),
            ).fetchone()
            if exists is None:
                return False
            conn.execute(
                "UPDATE locations SET is_current = 0, updated_at = ? WHERE scope = ? AND is_current = 1 AND id != ?",
                (now, self._scope, location_id),
            )
            conn.execute(
                "UPDATE locations SET is_current = 1, updated_at = ? WHERE id = ?",
                (now, location_id),
            )
        return True

    def set_favorite(self, location_id: str, favorite: bool) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE locations SET is_favorite = ?, updated_at = ? WHERE id = ? AND scope = ?",
                (int(favorite), to_epoch(self._clock()), location_id, self._scope),
            )
            return cursor.rowcount > 0

    def delete(self, location_id: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM locations WHERE id = ? AND scope = ?",
                (location_id, self._scope),
            )
            return cursor.rowcount > 0

    def list_favorites(self) -> list[Location]:
        with self._db.read() as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM locations
                WHERE scope = ? AND is_favorite = 1
                ORDER BY last_accessed_at IS NULL, last_accessed_at DESC, created_at DESC
                """,
                (self._scope,),
            ).fetchall()
        return [_row_to_location(row) for row in rows]

    def search(self, query: str, limit: int) -> list[Location]:
        """Rank name/country/region matches: exact, prefix, then shortest name."""
        needle = query.strip().lower()
        if not needle or limit <= 0:
            return []
        escaped = escape_like(needle)
        with self._db.read() as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS},
                    CASE
                        WHEN lower(name) = :needle THEN 0
                        WHEN lower(name) LIKE :prefix ESCAPE '\\' THEN 1
                        ELSE 2
                    END AS tier
                FROM locations
                WHERE scope = :scope
                  AND (
                    lower(name) LIKE :contains ESCAPE '\\'
                    OR lower(country) LIKE :contains ESCAPE '\\'
                    OR lower(COALESCE(region, '')) LIKE :contains ESCAPE '\\'
                  )
                ORDER BY
                    tier,
                    CASE WHEN tier = 2 THEN length(name) ELSE 0 END,
                    last_accessed_at IS NULL,
                    last_accessed_at DESC,
                    search_count DESC
                LIMIT :limit
                """,
                {
                    "needle": needle,
                    "prefix": f"{escaped}%",
                    "contains": f"%{escaped}%",
                    "scope": self._scope,
                    "limit": limit,
                },
            ).fetchall()
        return [_row_to_location(row) for row in rows]

    def count(self, *, favorites_only: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM locations WHERE scope = ?"
        if favorites_only:
            sql += " AND is_favorite = 1"
        with self._db.read() as conn:
            return int(conn.execute(sql, (self._scope,)).fetchone()[0])

    def ids(self) -> list[str]:
        with self._db.read() as conn:
            rows = conn.execute("SELECT id FROM locations WHERE scope = ?", (self._scope,)).fetchall()
        return [row["id"] for row in rows]
