"""Weather endpoints.

Endpoints:
  - /weather (current conditions)
  - /forecast (5 day / 3 hour forecast)
"""

from __future__ import annotations

from skyecache.models.cache import DataKind, UnitSystem

ENDPOINTS: dict[DataKind, str] = {
    DataKind.CURRENT: "/weather",
    DataKind.FORECAST: "/forecast",
}


def endpoint_for(kind: DataKind | str) -> str:
    return ENDPOINTS[DataKind(kind)]


def build_weather_params(
    api_key: str,
    latitude: float,
    longitude: float,
    unit_system: UnitSystem | str,
) -> dict[str, str]:
    """Query parameters shared by both weather endpoints."""
    params = {
        "lat": f"{latitude:.6f}",
        "lon": f"{longitude:.6f}",
        "units": UnitSystem(unit_system).value,
    }
    if api_key:
        params["appid"] = api_key
    return params
