from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from skyecache.models import (
    CacheEntry,
    ConnectionType,
    DataKind,
    GeocodeResult,
    Location,
    LocationHint,
    SyncResult,
    parse_timestamp,
    to_epoch,
)


def test_parse_timestamp_variants() -> None:
    expected = datetime(2026, 1, 1, tzinfo=UTC)
    assert parse_timestamp(1767225600) == expected
    assert parse_timestamp(1767225600.0) == expected
    assert parse_timestamp("2026-01-01T00:00:00+00:00") == expected
    assert parse_timestamp(datetime(2026, 1, 1)) == expected
    assert parse_timestamp(None) is None
    assert to_epoch(expected) == 1767225600.0


def test_cache_entry_freshness_boundary() -> None:
    entry = CacheEntry(
        location_id="loc",
        kind="forecast",
        payload={"list": []},
        written_at=1767225600,
        expires_at=1767225660,
    )
    assert entry.kind is DataKind.FORECAST
    assert entry.is_fresh(datetime(2026, 1, 1, 0, 0, 59, tzinfo=UTC))
    assert not entry.is_fresh(datetime(2026, 1, 1, 0, 1, tzinfo=UTC))
    assert entry.age_seconds(datetime(2026, 1, 1, 0, 0, 30, tzinfo=UTC)) == 30


def test_models_dump_camel_case_and_are_frozen() -> None:
    result = SyncResult(payload={"a": 1}, is_from_cache=True, is_stale=True, kind="current")
    dumped = result.model_dump(by_alias=True)
    assert dumped["isFromCache"] is True
    assert dumped["isStale"] is True
    assert dumped["unitSystem"] == "metric"

    with pytest.raises(ValidationError):
        result.is_stale = False  # type: ignore[misc]


def test_location_accepts_camel_case_input() -> None:
    location = Location.model_validate(
        {
            "id": "loc-1",
            "scope": "default",
            "latitude": 1.0,
            "longitude": 2.0,
            "isFavorite": True,
            "searchCount": 3,
            "createdAt": 1767225600,
            "updatedAt": 1767225600,
        }
    )
    assert location.is_favorite
    assert location.name == "Unknown"
    assert location.display_name == "Unknown"
    assert location.last_accessed_at is None


def test_hint_blank_values_become_none() -> None:
    hint = LocationHint(name="  ", country=" GB ", region="")
    assert hint.name is None
    assert hint.country == "GB"
    assert hint.region is None

    result = GeocodeResult(name="Oslo", country="NO", latitude=59.91, longitude=10.75)
    assert result.display_name == "Oslo, NO"


def test_unknown_connection_type_maps_to_unknown() -> None:
    assert ConnectionType("bluetooth") is ConnectionType.UNKNOWN
