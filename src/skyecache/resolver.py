"""Coordinate to canonical location id resolution."""

from __future__ import annotations

import logging
import math

from skyecache._constants import LATITUDE_RANGE, LONGITUDE_RANGE
from skyecache.exceptions import SkyeLocationNotFoundError, SkyeValidationError
from skyecache.models.location import Location, LocationHint
from skyecache.models.search import SearchHistoryItem, SearchType
from skyecache.persistence.locations import LocationRepository, quantize
from skyecache.persistence.search_history import SearchHistoryRepository

_logger = logging.getLogger(__name__)


def validate_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    """Return ``(latitude, longitude)`` as floats or raise :class:`SkyeValidationError`."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError) as exc:
        raise SkyeValidationError(f"Coordinates must be numbers, got ({latitude!r}, {longitude!r})") from exc
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise SkyeValidationError(f"Coordinates must be finite, got ({lat}, {lon})")
    if not LATITUDE_RANGE[0] <= lat <= LATITUDE_RANGE[1]:
        raise SkyeValidationError(f"Latitude {lat} outside {LATITUDE_RANGE}")
    if not LONGITUDE_RANGE[0] <= lon <= LONGITUDE_RANGE[1]:
        raise SkyeValidationError(f"Longitude {lon} outside {LONGITUDE_RANGE}")
    return lat, lon


def coordinate_key(latitude: float, longitude: float, tolerance: float) -> str:
    """Stable key for a coordinate pair when no location id is available."""
    return f"coord:{quantize(latitude, tolerance)}:{quantize(longitude, tolerance)}"


class LocationResolver:
    """Maps coordinates to stable location ids and manages location flags.

    Two coordinates closer than ``tolerance`` degrees on both axes always
    resolve to the same id.  Every method may raise
    :class:`~skyecache.exceptions.SkyeCacheUnavailableError` when the
    store fails.
    """

    def __init__(
        self,
        locations: LocationRepository,
        history: SearchHistoryRepository,
        *,
        tolerance: float,
    ) -> None:
        self._locations = locations
        self._history = history
        self._tolerance = tolerance

    @property
    def tolerance(self) -> float:
        return self._tolerance

    def resolve(self, latitude: float, longitude: float, hint: LocationHint | None = None) -> str:
        """Return the canonical id for a coordinate pair, creating it if needed."""
        lat, lon = validate_coordinates(latitude, longitude)
        location = self._locations.touch_or_create(lat, lon, self._tolerance, hint)
        _logger.debug("Resolved (%.5f, %.5f) to %s", lat, lon, location.id)
        return location.id

    def resolve_location(self, latitude: float, longitude: float, hint: LocationHint | None = None) -> Location:
        lat, lon = validate_coordinates(latitude, longitude)
        return self._locations.touch_or_create(lat, lon, self._tolerance, hint)

    def find(self, latitude: float, longitude: float) -> Location | None:
        lat, lon = validate_coordinates(latitude, longitude)
        return self._locations.find_nearest(lat, lon, self._tolerance)

    def get(self, location_id: str) -> Location | None:
        return self._locations.get(location_id)

    def get_current(self) -> Location | None:
        return self._locations.get_current()

    def set_current(self, location_id: str) -> Location:
        if not self._locations.set_current(location_id):
            raise SkyeLocationNotFoundError(f"Unknown location {location_id}", location_id=location_id)
        location = self._locations.get(location_id)
        if location is None:
            raise SkyeLocationNotFoundError(f"Unknown location {location_id}", location_id=location_id)
        return location

    def mark_favorite(self, location_id: str, favorite: bool = True) -> None:
        if not self._locations.set_favorite(location_id, favorite):
            raise SkyeLocationNotFoundError(f"Unknown location {location_id}", location_id=location_id)

    def list_favorites(self) -> list[Location]:
        return self._locations.list_favorites()

    def remove(self, location_id: str) -> bool:
        """Delete a location and, by cascade, its cached weather."""
        return self._locations.delete(location_id)

    def search_by_text(self, query: str, limit: int = 10) -> list[Location]:
        return self._locations.search(query, limit)

    def count(self, *, favorites_only: bool = False) -> int:
        return self._locations.count(favorites_only=favorites_only)

    def location_ids(self) -> list[str]:
        return self._locations.ids()

    # ------------------------------------------------------------------
    # Search history
    # ------------------------------------------------------------------

    def record_search(
        self,
        query: str,
        location_id: str | None = None,
        search_type: SearchType | str = SearchType.MANUAL,
    ) -> SearchHistoryItem | None:
        query = query.strip()
        if not query:
            return None
        return self._history.add(query, location_id=location_id, search_type=search_type)

    def recent_queries(self, limit: int = 5) -> list[str]:
        return self._history.recent_queries(limit)

    def search_history(self, limit: int = 10) -> list[SearchHistoryItem]:
        return self._history.history(limit)

    def clear_search_history(self) -> int:
        return self._history.clear()
