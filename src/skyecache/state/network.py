"""Process-wide network status fed by a platform observer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from skyecache._constants import SLOW_CELLULAR_GENERATIONS, WEAK_WIFI_SIGNAL_DBM
from skyecache.models._base import utcnow
from skyecache.models.network import ConnectionType, NetworkState

_logger = logging.getLogger(__name__)

NetworkListener = Callable[[NetworkState], None]


def is_slow_connection(
    connection_type: ConnectionType | str,
    *,
    cellular_generation: str | None = None,
    wifi_strength: int | None = None,
) -> bool:
    """2G/3G cellular or Wi-Fi weaker than the threshold counts as slow."""
    kind = ConnectionType(connection_type)
    if kind is ConnectionType.CELLULAR and cellular_generation:
        return cellular_generation.strip().lower() in SLOW_CELLULAR_GENERATIONS
    if kind is ConnectionType.WIFI and wifi_strength is not None:
        return wifi_strength < WEAK_WIFI_SIGNAL_DBM
    return False


class NetworkMonitor:
    """Holds the latest :class:`NetworkState` and notifies listeners on change.

    The engine does not check the network itself; an observer pushes
    updates through :meth:`update` or :meth:`update_from_reachability`.
    """

    def __init__(
        self,
        initial: NetworkState | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._clock = clock
        self._state = initial or NetworkState(last_transition_at=clock())
        self._listeners: list[NetworkListener] = []

    @property
    def state(self) -> NetworkState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def is_slow(self) -> bool:
        return self._state.is_slow

    def update(
        self,
        *,
        is_online: bool | None = None,
        is_slow: bool | None = None,
        connection_type: ConnectionType | str | None = None,
    ) -> NetworkState:
        """Apply a partial update.  Listeners run only if something changed."""
        current = self._state
        candidate = {
            "is_online": current.is_online if is_online is None else is_online,
            "is_slow": current.is_slow if is_slow is None else is_slow,
            "connection_type": (
                current.connection_type if connection_type is None else ConnectionType(connection_type)
            ),
        }
        if not candidate["is_online"]:
            candidate["is_slow"] = False
        unchanged = all(getattr(current, name) == value for name, value in candidate.items())
        if unchanged:
            return current

        state = NetworkState(**candidate, last_transition_at=self._clock())
        self._state = state
        _logger.info(
            "Network state changed: online=%s slow=%s type=%s",
            state.is_online,
            state.is_slow,
            state.connection_type.value,
        )
        self._notify(state)
        return state

    def update_from_reachability(
        self,
        *,
        connected: bool,
        internet_reachable: bool | None = None,
        connection_type: ConnectionType | str = ConnectionType.UNKNOWN,
        cellular_generation: str | None = None,
        wifi_strength: int | None = None,
    ) -> NetworkState:
        """Derive the state from a raw reachability report.

        Online requires a connection and, when the platform knows it,
        internet reachability.
        """
        online = connected and internet_reachable is not False
        slow = online and is_slow_connection(
            connection_type,
            cellular_generation=cellular_generation,
            wifi_strength=wifi_strength,
        )
        return self.update(is_online=online, is_slow=slow, connection_type=connection_type)

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, state: NetworkState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                _logger.warning("Network listener %r failed", listener, exc_info=True)
