"""Data models for the cache engine."""

from skyecache.models._base import SkyeBaseModel, UtcTimestamp, parse_timestamp, to_epoch, utcnow
from skyecache.models.cache import CacheEntry, DataKind, UnitSystem
from skyecache.models.location import GeocodeResult, Location, LocationHint
from skyecache.models.network import ConnectionType, NetworkState
from skyecache.models.result import CacheInfo, SyncResult
from skyecache.models.search import SearchHistoryItem, SearchType

__all__ = [
    "CacheEntry",
    "CacheInfo",
    "ConnectionType",
    "DataKind",
    "GeocodeResult",
    "Location",
    "LocationHint",
    "NetworkState",
    "SearchHistoryItem",
    "SearchType",
    "SkyeBaseModel",
    "SyncResult",
    "UnitSystem",
    "UtcTimestamp",
    "parse_timestamp",
    "to_epoch",
    "utcnow",
]
