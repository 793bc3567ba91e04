"""HTTP transport for the upstream weather and geocoding services."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Protocol

import aiohttp

from skyecache._api.geocoding import (
    DIRECT_ENDPOINT,
    REVERSE_ENDPOINT,
    build_direct_params,
    build_reverse_params,
    parse_geocode_results,
)
from skyecache._api.weather import build_weather_params, endpoint_for
from skyecache._constants import USER_AGENT
from skyecache._redact import redact_for_log
from skyecache.config import SkyeConfig
from skyecache.exceptions import (
    SkyeRateLimitError,
    SkyeTransientNetworkError,
    SkyeUpstreamError,
)
from skyecache.models._base import utcnow
from skyecache.models.cache import DataKind, UnitSystem
from skyecache.models.location import GeocodeResult

_logger = logging.getLogger(__name__)


class WeatherFetcher(Protocol):
    """Structural interface for the remote weather source.

    The orchestrator only needs :meth:`fetch`; :meth:`search` and
    :meth:`reverse` back location search and may be omitted by fetchers
    that do not geocode.
    """

    async def fetch(
        self,
        latitude: float,
        longitude: float,
        kind: DataKind,
        unit_system: UnitSystem,
    ) -> dict[str, Any]:
        ...


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Seconds from a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if value is None or not value.strip():
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - (now or utcnow())).total_seconds())


class OpenWeatherTransport:
    """aiohttp client for OpenWeather-compatible endpoints.

    Maps failures onto the transport exception hierarchy so the retry
    policy can classify them:

    * connection errors and 5xx -> :class:`SkyeTransientNetworkError`
    * 429 -> :class:`SkyeRateLimitError` with the ``Retry-After`` hint
    * other non-200 and malformed bodies -> :class:`SkyeUpstreamError`
    """

    def __init__(self, config: SkyeConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    async def _get_json(self, url: str, params: Mapping[str, str], endpoint: str) -> Any:
        headers = {"accept": "application/json", "user-agent": USER_AGENT}
        _logger.debug("GET %s params=%s", url, redact_for_log(params))

        try:
            async with self._http.get(url, params=dict(params), headers=headers) as resp:
                text = await resp.text()
                status = resp.status
                retry_after = resp.headers.get("Retry-After")
        except aiohttp.ClientError as exc:
            raise SkyeTransientNetworkError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if status == 429:
            raise SkyeRateLimitError(
                f"HTTP 429 from {endpoint}",
                retry_after=parse_retry_after(retry_after),
                endpoint=endpoint,
            )
        if status >= 500:
            raise SkyeTransientNetworkError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )
        if status != 200:
            raise SkyeUpstreamError(
                f"HTTP {status} from {endpoint}: {redact_for_log(text[:200])}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SkyeUpstreamError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

    async def fetch(
        self,
        latitude: float,
        longitude: float,
        kind: DataKind,
        unit_system: UnitSystem,
    ) -> dict[str, Any]:
        endpoint = endpoint_for(kind)
        body = await self._get_json(
            f"{self._config.base_url}{endpoint}",
            build_weather_params(self._config.api_key, latitude, longitude, unit_system),
            endpoint,
        )
        if not isinstance(body, dict):
            raise SkyeUpstreamError(
                f"Expected a JSON object from {endpoint}, got {type(body).__name__}",
                endpoint=endpoint,
            )
        return body

    async def search(self, query: str, limit: int = 5) -> list[GeocodeResult]:
        body = await self._get_json(
            f"{self._config.geocoding_url}{DIRECT_ENDPOINT}",
            build_direct_params(self._config.api_key, query, limit),
            DIRECT_ENDPOINT,
        )
        return parse_geocode_results(body)

    async def reverse(self, latitude: float, longitude: float) -> GeocodeResult | None:
        body = await self._get_json(
            f"{self._config.geocoding_url}{REVERSE_ENDPOINT}",
            build_reverse_params(self._config.api_key, latitude, longitude),
            REVERSE_ENDPOINT,
        )
        results = parse_geocode_results(body)
        return results[0] if results else None
