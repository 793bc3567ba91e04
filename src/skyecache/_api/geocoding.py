"""Geocoding endpoints.

Endpoints:
  - /direct (place name to coordinates)
  - /reverse (coordinates to place name)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from skyecache.models.location import GeocodeResult

_logger = logging.getLogger(__name__)

DIRECT_ENDPOINT = "/direct"
REVERSE_ENDPOINT = "/reverse"


def build_direct_params(api_key: str, query: str, limit: int) -> dict[str, str]:
    params = {"q": query, "limit": str(limit)}
    if api_key:
        params["appid"] = api_key
    return params


def build_reverse_params(api_key: str, latitude: float, longitude: float) -> dict[str, str]:
    params = {"lat": f"{latitude:.6f}", "lon": f"{longitude:.6f}", "limit": "1"}
    if api_key:
        params["appid"] = api_key
    return params


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (ValueError, TypeError):
        return None
    if result != result:  # NaN check
        return None
    return result


def parse_geocode_results(items: Any) -> list[GeocodeResult]:
    """Convert a geocoding response array into results, skipping bad rows."""
    if not isinstance(items, list):
        return []
    results: list[GeocodeResult] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        lat = _safe_float(item.get("lat"))
        lon = _safe_float(item.get("lon"))
        if lat is None or lon is None:
            continue
        try:
            results.append(
                GeocodeResult(
                    name=item.get("name"),
                    country=item.get("country"),
                    region=item.get("state"),
                    latitude=lat,
                    longitude=lon,
                )
            )
        except ValidationError:
            _logger.debug("Skipping malformed geocoding row: %s", item)
    return results
