"""Search history model."""

from __future__ import annotations

from enum import StrEnum

from skyecache.models._base import SkyeBaseModel, UtcTimestamp


class SearchType(StrEnum):
    MANUAL = "manual"
    GPS = "gps"
    SUGGESTION = "suggestion"


class SearchHistoryItem(SkyeBaseModel):
    id: str
    scope: str
    query: str
    location_id: str | None = None
    search_type: SearchType = SearchType.MANUAL
    created_at: UtcTimestamp
