"""Location registry models."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from skyecache._constants import UNKNOWN_LOCATION_NAME
from skyecache.models._base import OptionalUtcTimestamp, SkyeBaseModel, UtcTimestamp


class LocationHint(SkyeBaseModel):
    """Caller-supplied naming for a coordinate pair (usually from geocoding)."""

    name: str | None = None
    country: str | None = None
    region: str | None = None

    @field_validator("name", "country", "region", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class GeocodeResult(LocationHint):
    """A named coordinate pair returned by a geocoding lookup."""

    latitude: float
    longitude: float

    @property
    def display_name(self) -> str:
        parts = [self.name or UNKNOWN_LOCATION_NAME]
        if self.region:
            parts.append(self.region)
        if self.country:
            parts.append(self.country)
        return ", ".join(parts)


class Location(SkyeBaseModel):
    """Canonical location record.

    Parameters
    ----------
    id : str
        Opaque id, stable for every coordinate within tolerance.
    scope : str
        Owning user/session.
    name, country, region : str
        Display naming; ``"Unknown"``/empty until a hint supplies it.
    latitude, longitude : float
        Coordinates of the first sighting.
    is_current : bool
        At most one location per scope carries this flag.
    is_favorite : bool
        User favorite.
    search_count : int
        Number of accesses; never decreases.
    last_accessed_at : datetime or None
        Last access time.
    created_at, updated_at : datetime
        Row bookkeeping.
    """

    id: str
    scope: str
    name: str = UNKNOWN_LOCATION_NAME
    country: str = ""
    region: str | None = None
    latitude: float
    longitude: float
    is_current: bool = False
    is_favorite: bool = False
    search_count: int = 0
    last_accessed_at: OptionalUtcTimestamp = None
    created_at: UtcTimestamp
    updated_at: UtcTimestamp

    @property
    def display_name(self) -> str:
        parts = [self.name]
        if self.region:
            parts.append(self.region)
        if self.country:
            parts.append(self.country)
        return ", ".join(parts)
