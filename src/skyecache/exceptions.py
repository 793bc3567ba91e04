"""Custom exception hierarchy for skyecache."""

from __future__ import annotations


class SkyeError(Exception):
    """Base exception for all skyecache errors."""


class SkyeConfigError(SkyeError):
    """Invalid or missing configuration."""


class SkyeValidationError(SkyeError, ValueError):
    """Malformed request input (coordinates out of range, unknown kind).

    Never retried and never reaches the persistent store.
    """


class SkyeLocationNotFoundError(SkyeError):
    """A location id does not exist in the registry."""

    def __init__(self, message: str, *, location_id: str = "") -> None:
        self.location_id = location_id
        super().__init__(message)


class SkyeCacheUnavailableError(SkyeError):
    """The embedded store failed (I/O error, corruption, closed database).

    The orchestrator downgrades this to a cache miss.
    """


class SkyeNoDataNoConnectionError(SkyeError):
    """Offline and nothing cached for the requested location.

    Distinct from transport failures so callers can prompt the user to
    reconnect instead of showing a generic error.
    """

    def __init__(self, message: str, *, location_id: str | None = None, kind: str = "") -> None:
        self.location_id = location_id
        self.kind = kind
        super().__init__(message)


class SkyeTransportError(SkyeError):
    """Remote weather service failure."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        attempts: int = 0,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(message)


class SkyeTransientNetworkError(SkyeTransportError):
    """Connectivity lost, timeout or a 5xx response.  Retryable."""


class SkyeRateLimitError(SkyeTransportError):
    """Upstream rejected the request with HTTP 429.

    ``retry_after`` carries the server hint in seconds, when one was sent.
    """

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        status_code: int | None = 429,
        endpoint: str = "",
        attempts: int = 0,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code, endpoint=endpoint, attempts=attempts)


class SkyeUpstreamError(SkyeTransportError):
    """Non-retryable upstream failure (4xx client error, malformed body)."""
