"""skyecache - Offline-first weather cache and sync engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("skyecache")
except PackageNotFoundError:
    __version__ = "0+local"
from skyecache._cache import TTLCache
from skyecache._dedup import Deduplicator
from skyecache._transport import OpenWeatherTransport, WeatherFetcher
from skyecache.config import RetrySettings, SkyeConfig
from skyecache.context import AppContext
from skyecache.exceptions import (
    SkyeCacheUnavailableError,
    SkyeConfigError,
    SkyeError,
    SkyeLocationNotFoundError,
    SkyeNoDataNoConnectionError,
    SkyeRateLimitError,
    SkyeTransientNetworkError,
    SkyeTransportError,
    SkyeUpstreamError,
    SkyeValidationError,
)
from skyecache.models import (
    CacheEntry,
    CacheInfo,
    ConnectionType,
    DataKind,
    GeocodeResult,
    Location,
    LocationHint,
    NetworkState,
    SearchHistoryItem,
    SearchType,
    SyncResult,
    UnitSystem,
)
from skyecache.orchestrator import SyncOrchestrator
from skyecache.persistence import Database, PersistentStore
from skyecache.resolver import LocationResolver
from skyecache.retry import FailureKind, RetryPolicy
from skyecache.state import NetworkMonitor

__all__ = [
    "__version__",
    "AppContext",
    "CacheEntry",
    "CacheInfo",
    "ConnectionType",
    "DataKind",
    "Database",
    "Deduplicator",
    "FailureKind",
    "GeocodeResult",
    "Location",
    "LocationHint",
    "LocationResolver",
    "NetworkMonitor",
    "NetworkState",
    "OpenWeatherTransport",
    "PersistentStore",
    "RetryPolicy",
    "RetrySettings",
    "SearchHistoryItem",
    "SearchType",
    "SkyeCacheUnavailableError",
    "SkyeConfig",
    "SkyeConfigError",
    "SkyeError",
    "SkyeLocationNotFoundError",
    "SkyeNoDataNoConnectionError",
    "SkyeRateLimitError",
    "SkyeTransientNetworkError",
    "SkyeTransportError",
    "SkyeUpstreamError",
    "SkyeValidationError",
    "SyncOrchestrator",
    "SyncResult",
    "TTLCache",
    "UnitSystem",
    "WeatherFetcher",
]
