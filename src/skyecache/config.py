"""Engine configuration for skyecache."""

from __future__ import annotations

import dataclasses
import math
import os
from typing import Any

from skyecache._constants import (
    BASE_URL,
    DEFAULT_COORDINATE_TOLERANCE,
    DEFAULT_CURRENT_TTL,
    DEFAULT_DATABASE_PATH,
    DEFAULT_DEBOUNCE_WINDOW,
    DEFAULT_FORECAST_TTL,
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_MEMORY_SWEEP_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_JITTER,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY,
    DEFAULT_SCOPE,
    DEFAULT_STORE_SWEEP_INTERVAL,
    GEOCODING_URL,
)
from skyecache.exceptions import SkyeConfigError
from skyecache.models.cache import DataKind, UnitSystem


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise SkyeConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class RetrySettings:
    """Bounded retry parameters for remote fetches."""

    max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_BASE_DELAY
    max_delay: float = DEFAULT_RETRY_MAX_DELAY
    backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    jitter: float = DEFAULT_RETRY_JITTER
    max_retry_after: float = DEFAULT_MAX_RETRY_AFTER

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise SkyeConfigError(f"retry max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0 or self.max_retry_after < 0:
            raise SkyeConfigError("retry delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise SkyeConfigError(f"retry backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if not 0 <= self.jitter <= 1:
            raise SkyeConfigError(f"retry jitter must be within [0, 1], got {self.jitter}")


@dataclasses.dataclass(frozen=True)
class SkyeConfig:
    """Engine configuration.

    Parameters
    ----------
    api_key : str
        Key for the upstream weather service.  May be empty when a custom
        fetcher is supplied.
    base_url : str
        Weather API base URL.
    geocoding_url : str
        Geocoding API base URL.
    database_path : str
        SQLite file path, or ``":memory:"``.
    scope : str
        Owner scope (user or session) for the location registry.
    unit_system : str
        Default unit system (``"metric"`` or ``"imperial"``).
    coordinate_tolerance : float
        Degrees under which two coordinates resolve to the same location.
    current_ttl : float
        Freshness window for ``current`` data, in seconds.
    forecast_ttl : float
        Freshness window for ``forecast`` data, in seconds.
    memory_sweep_interval : float
        Seconds between sweeps of the in-memory cache.
    store_sweep_interval : float
        Seconds between sweeps of the persistent cache.  ``0`` disables
        the periodic sweep.
    request_timeout : float
        Upper bound, in seconds, for one remote fetch attempt.
    debounce_window : float
        Seconds during which a key that just started fetching is not
        fetched again by an independent caller.
    background_refresh : bool
        Refresh stale entries in the background after serving them.
    retry : RetrySettings
        Retry parameters.
    """

    api_key: str = ""
    base_url: str = BASE_URL
    geocoding_url: str = GEOCODING_URL
    database_path: str = DEFAULT_DATABASE_PATH
    scope: str = DEFAULT_SCOPE
    unit_system: str = UnitSystem.METRIC.value
    coordinate_tolerance: float = DEFAULT_COORDINATE_TOLERANCE
    current_ttl: float = DEFAULT_CURRENT_TTL
    forecast_ttl: float = DEFAULT_FORECAST_TTL
    memory_sweep_interval: float = DEFAULT_MEMORY_SWEEP_INTERVAL
    store_sweep_interval: float = DEFAULT_STORE_SWEEP_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    debounce_window: float = DEFAULT_DEBOUNCE_WINDOW
    background_refresh: bool = True
    retry: RetrySettings = dataclasses.field(default_factory=RetrySettings)

    def __post_init__(self) -> None:
        if not math.isfinite(self.coordinate_tolerance) or self.coordinate_tolerance <= 0:
            raise SkyeConfigError(f"coordinate_tolerance must be positive, got {self.coordinate_tolerance}")
        if self.current_ttl <= 0 or self.forecast_ttl <= 0:
            raise SkyeConfigError("cache TTLs must be positive")
        if self.request_timeout <= 0:
            raise SkyeConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.debounce_window < 0:
            raise SkyeConfigError(f"debounce_window must be non-negative, got {self.debounce_window}")
        if self.memory_sweep_interval <= 0:
            raise SkyeConfigError(f"memory_sweep_interval must be positive, got {self.memory_sweep_interval}")
        if self.store_sweep_interval < 0:
            raise SkyeConfigError(f"store_sweep_interval must be non-negative, got {self.store_sweep_interval}")
        if not self.scope.strip():
            raise SkyeConfigError("scope must be non-empty")
        try:
            UnitSystem(self.unit_system)
        except ValueError as exc:
            raise SkyeConfigError(f"unknown unit_system {self.unit_system!r}") from exc

    def ttl_for(self, kind: DataKind | str) -> float:
        """Freshness window in seconds for a data kind."""
        if DataKind(kind) is DataKind.FORECAST:
            return self.forecast_ttl
        return self.current_ttl

    @classmethod
    def from_env(cls, **overrides: Any) -> SkyeConfig:
        """Create configuration from environment variables.

        Reads ``SKYE_API_KEY`` and the optional ``SKYE_*`` variables
        listed below.  Explicit keyword arguments override environment
        values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SkyeConfig
            Populated configuration.
        """
        env = os.environ

        retry_kwargs: dict[str, Any] = {}
        _ENV_RETRY_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "SKYE_RETRY_MAX_ATTEMPTS": ("max_attempts", int),
            "SKYE_RETRY_BASE_DELAY": ("base_delay", float),
            "SKYE_RETRY_MAX_DELAY": ("max_delay", float),
            "SKYE_RETRY_MAX_RETRY_AFTER": ("max_retry_after", float),
        }
        for env_key, (field_name, cast) in _ENV_RETRY_MAP.items():
            val = env.get(env_key)
            if val is not None:
                retry_kwargs[field_name] = _env_number(env_key, val, cast)

        # Allow overriding retry fields via a nested dict
        retry_overrides = overrides.pop("retry", None)
        if isinstance(retry_overrides, dict):
            retry_kwargs.update(retry_overrides)
        elif isinstance(retry_overrides, RetrySettings):
            retry_kwargs = dataclasses.asdict(retry_overrides)

        retry = RetrySettings(**retry_kwargs) if retry_kwargs else RetrySettings()

        _ENV_CONFIG_MAP = {
            "SKYE_API_KEY": "api_key",
            "SKYE_BASE_URL": "base_url",
            "SKYE_GEOCODING_URL": "geocoding_url",
            "SKYE_DATABASE_PATH": "database_path",
            "SKYE_SCOPE": "scope",
            "SKYE_UNIT_SYSTEM": "unit_system",
        }
        config_kwargs: dict[str, Any] = {"retry": retry}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "SKYE_COORDINATE_TOLERANCE": "coordinate_tolerance",
            "SKYE_CURRENT_TTL": "current_ttl",
            "SKYE_FORECAST_TTL": "forecast_ttl",
            "SKYE_MEMORY_SWEEP_INTERVAL": "memory_sweep_interval",
            "SKYE_STORE_SWEEP_INTERVAL": "store_sweep_interval",
            "SKYE_REQUEST_TIMEOUT": "request_timeout",
            "SKYE_DEBOUNCE_WINDOW": "debounce_window",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        if "background_refresh" not in overrides:
            config_kwargs["background_refresh"] = _env_bool(env.get("SKYE_BACKGROUND_REFRESH"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
