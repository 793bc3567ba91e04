"""Network reachability snapshot."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from skyecache.models._base import SkyeBaseModel, UtcTimestamp, utcnow


class ConnectionType(StrEnum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> ConnectionType:
        return cls.UNKNOWN


class NetworkState(SkyeBaseModel):
    """Process-wide network status as last reported by the observer."""

    is_online: bool = True
    is_slow: bool = False
    connection_type: ConnectionType = ConnectionType.UNKNOWN
    last_transition_at: UtcTimestamp = Field(default_factory=utcnow)
