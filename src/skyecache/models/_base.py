"""Base model and timestamp helpers shared by all skyecache records.

Every record inherits from :class:`SkyeBaseModel` which provides:

* ``alias_generator=to_camel`` so records serialise with the camelCase
  keys a UI layer expects (``isCurrent``, ``expiresAt``) while Python
  code uses snake_case.
* Frozen instances: records handed to callers are snapshots.

SQLite stores timestamps as epoch seconds; :data:`UtcTimestamp` coerces
them (and naive datetimes) to timezone-aware UTC datetimes on load.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Convert epoch seconds, ISO strings or datetimes to a UTC datetime.

    Returns ``None`` when the value is ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=UTC)
    if isinstance(value, str):
        return parse_timestamp(datetime.fromisoformat(value))
    return value


def to_epoch(value: datetime) -> float:
    """Epoch seconds for a datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


UtcTimestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch seconds to UTC datetimes."""

OptionalUtcTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


class SkyeBaseModel(BaseModel):
    """Base for skyecache records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
