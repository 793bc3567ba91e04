"""Internal constants shared across the library."""

BASE_URL = "https://api.openweathermap.org/data/2.5"
GEOCODING_URL = "https://api.openweathermap.org/geo/1.0"
USER_AGENT = "skyecache/1"

DEFAULT_DATABASE_PATH = "skyecache.db"
DEFAULT_SCOPE = "default"
UNKNOWN_LOCATION_NAME = "Unknown"

# ------------------------------------------------------------------
# Location dedup
# ------------------------------------------------------------------

#: Coordinate proximity (degrees) under which two points are the same
#: location.  1e-4 degrees is roughly 11 m at the equator.
DEFAULT_COORDINATE_TOLERANCE = 1e-4

LATITUDE_RANGE: tuple[float, float] = (-90.0, 90.0)
LONGITUDE_RANGE: tuple[float, float] = (-180.0, 180.0)

# ------------------------------------------------------------------
# Freshness windows (seconds)
# ------------------------------------------------------------------

DEFAULT_CURRENT_TTL = 10 * 60.0
DEFAULT_FORECAST_TTL = 30 * 60.0

DEFAULT_MEMORY_SWEEP_INTERVAL = 2 * 60.0
DEFAULT_STORE_SWEEP_INTERVAL = 15 * 60.0

# ------------------------------------------------------------------
# Request shaping
# ------------------------------------------------------------------

DEFAULT_REQUEST_TIMEOUT = 5.0
DEFAULT_DEBOUNCE_WINDOW = 2.0

DEFAULT_RETRY_MAX_ATTEMPTS = 2
DEFAULT_RETRY_BASE_DELAY = 0.3
DEFAULT_RETRY_MAX_DELAY = 4.0
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0
DEFAULT_RETRY_JITTER = 0.1
DEFAULT_MAX_RETRY_AFTER = 10.0

#: Wi-Fi signal strength (dBm) below which a connection counts as slow.
WEAK_WIFI_SIGNAL_DBM = -70
SLOW_CELLULAR_GENERATIONS: frozenset[str] = frozenset({"2g", "3g"})
