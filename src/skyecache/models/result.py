"""Read models returned to the UI layer."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from skyecache.models._base import OptionalUtcTimestamp, SkyeBaseModel
from skyecache.models.cache import DataKind, UnitSystem


class SyncResult(SkyeBaseModel):
    """Outcome of a ``get_or_refresh`` call.

    Parameters
    ----------
    payload : dict
        Upstream JSON object.
    is_from_cache : bool
        Served from the memory or persistent cache.
    is_stale : bool
        Past its freshness window, or served while offline.
    is_offline : bool
        Served because the network was unavailable.
    location_id : str or None
        Canonical location id; ``None`` when the registry was unavailable.
    kind : DataKind
        Data kind.
    unit_system : UnitSystem
        Units of ``payload``.
    fetched_at : datetime or None
        When the payload was obtained from upstream.
    error : str or None
        Message of the fetch failure that caused a stale fallback.
    """

    payload: dict[str, Any] = Field(default_factory=dict)
    is_from_cache: bool
    is_stale: bool = False
    is_offline: bool = False
    location_id: str | None = None
    kind: DataKind
    unit_system: UnitSystem = UnitSystem.METRIC
    fetched_at: OptionalUtcTimestamp = None
    error: str | None = None


class CacheInfo(SkyeBaseModel):
    """Point-in-time cache statistics."""

    total_locations: int = 0
    favorite_locations: int = 0
    cached_entries: int = 0
    fresh_entries: int = 0
    memory_entries: int = 0
    in_flight: int = 0
