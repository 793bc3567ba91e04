from __future__ import annotations

import pytest

from skyecache.models.network import ConnectionType, NetworkState
from skyecache.state.network import NetworkMonitor, is_slow_connection
from skyecache.state.policy import SyncAction, choose_action, is_expired


@pytest.mark.parametrize(
    ("connection_type", "generation", "strength", "expected"),
    [
        ("cellular", "2g", None, True),
        ("cellular", "3G", None, True),
        ("cellular", "4g", None, False),
        ("wifi", None, -80, True),
        ("wifi", None, -70, False),
        ("wifi", None, None, False),
        ("ethernet", None, None, False),
        ("satellite", None, None, False),
    ],
)
def test_is_slow_connection(connection_type, generation, strength, expected) -> None:
    assert is_slow_connection(connection_type, cellular_generation=generation, wifi_strength=strength) is expected


def test_listeners_fire_only_on_change(clock) -> None:
    monitor = NetworkMonitor(clock=clock)
    seen: list[NetworkState] = []
    unsubscribe = monitor.add_listener(seen.append)

    monitor.update(is_online=True)
    assert seen == []

    clock.advance(10)
    state = monitor.update(is_online=False)
    assert [s.is_online for s in seen] == [False]
    assert state.last_transition_at == clock.now

    unsubscribe()
    monitor.update(is_online=True)
    assert len(seen) == 1
    unsubscribe()


def test_offline_is_never_slow(clock) -> None:
    monitor = NetworkMonitor(clock=clock)
    monitor.update(is_slow=True)
    assert monitor.is_slow

    state = monitor.update(is_online=False)
    assert not state.is_slow


def test_reachability_report(clock) -> None:
    monitor = NetworkMonitor(clock=clock)

    state = monitor.update_from_reachability(connected=True, internet_reachable=False, connection_type="wifi")
    assert not state.is_online

    state = monitor.update_from_reachability(
        connected=True,
        internet_reachable=None,
        connection_type="wifi",
        wifi_strength=-85,
    )
    assert state.is_online
    assert state.is_slow
    assert state.connection_type is ConnectionType.WIFI

    state = monitor.update_from_reachability(connected=False, connection_type="unknown")
    assert not state.is_online


def test_listener_errors_are_logged_not_raised(clock, caplog) -> None:
    monitor = NetworkMonitor(clock=clock)
    received: list[bool] = []

    def broken(_state: NetworkState) -> None:
        raise RuntimeError("listener bug")

    monitor.add_listener(broken)
    monitor.add_listener(lambda state: received.append(state.is_online))

    with caplog.at_level("WARNING", logger="skyecache.state.network"):
        monitor.update(is_online=False)

    assert received == [False]
    assert "listener" in caplog.text.lower()


ONLINE = NetworkState(is_online=True)
SLOW = NetworkState(is_online=True, is_slow=True)
OFFLINE = NetworkState(is_online=False)


@pytest.mark.parametrize(
    ("kwargs", "expected"),
    [
        ({"has_entry": False, "is_fresh": False, "network": OFFLINE}, SyncAction.FAIL_OFFLINE),
        ({"has_entry": True, "is_fresh": False, "network": OFFLINE}, SyncAction.SERVE_OFFLINE),
        ({"has_entry": True, "is_fresh": True, "network": OFFLINE, "force_refresh": True}, SyncAction.SERVE_OFFLINE),
        ({"has_entry": False, "is_fresh": False, "network": ONLINE}, SyncAction.FETCH),
        ({"has_entry": True, "is_fresh": True, "network": ONLINE}, SyncAction.SERVE),
        ({"has_entry": True, "is_fresh": False, "network": ONLINE}, SyncAction.SERVE_AND_REFRESH),
        (
            {"has_entry": True, "is_fresh": False, "network": ONLINE, "background_refresh": False},
            SyncAction.FETCH,
        ),
        ({"has_entry": True, "is_fresh": True, "network": ONLINE, "force_refresh": True}, SyncAction.FETCH),
        (
            {"has_entry": True, "is_fresh": True, "network": SLOW, "force_refresh": True},
            SyncAction.SERVE_AND_REFRESH,
        ),
        (
            {"has_entry": True, "is_fresh": True, "network": ONLINE, "force_refresh": True, "debounced": True},
            SyncAction.SERVE_AND_REFRESH,
        ),
        ({"has_entry": False, "is_fresh": False, "network": SLOW, "force_refresh": True}, SyncAction.FETCH),
        ({"has_entry": True, "is_fresh": False, "network": SLOW}, SyncAction.SERVE_AND_REFRESH),
        (
            {"has_entry": True, "is_fresh": False, "network": SLOW, "background_refresh": False},
            SyncAction.SERVE_AND_REFRESH,
        ),
        ({"has_entry": True, "is_fresh": True, "network": SLOW, "background_refresh": False}, SyncAction.SERVE),
        ({"has_entry": False, "is_fresh": False, "network": SLOW}, SyncAction.FETCH),
    ],
)
def test_choose_action(kwargs, expected) -> None:
    params = {"force_refresh": False, "debounced": False, "background_refresh": True}
    params.update(kwargs)
    assert choose_action(**params) is expected


def test_is_expired_at_boundary(clock) -> None:
    expires_at = clock.now
    assert is_expired(clock.now, expires_at)
    clock.advance(-1)
    assert not is_expired(clock.now, expires_at)
