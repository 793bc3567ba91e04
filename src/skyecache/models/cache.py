"""Cache entry model and the closed key enums."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from skyecache.models._base import SkyeBaseModel, UtcTimestamp


class DataKind(StrEnum):
    """Kind of weather data cached per location."""

    CURRENT = "current"
    FORECAST = "forecast"


class UnitSystem(StrEnum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class CacheEntry(SkyeBaseModel):
    """One persisted payload for a ``(location_id, kind)`` pair.

    Parameters
    ----------
    location_id : str
        Canonical location id.
    kind : DataKind
        Data kind.
    unit_system : UnitSystem
        Units the payload was fetched in.
    payload : dict
        Opaque upstream JSON object.
    written_at : datetime
        When the entry was written.
    expires_at : datetime
        End of the freshness window.  The entry stays readable afterwards.
    """

    location_id: str
    kind: DataKind
    unit_system: UnitSystem = UnitSystem.METRIC
    payload: dict[str, Any] = Field(default_factory=dict)
    written_at: UtcTimestamp
    expires_at: UtcTimestamp

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at

    def remaining_seconds(self, now: datetime) -> float:
        """Seconds left in the freshness window (never negative)."""
        return max(0.0, (self.expires_at - now).total_seconds())

    def age_seconds(self, now: datetime) -> float:
        return (now - self.written_at).total_seconds()
