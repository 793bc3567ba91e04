"""Deterministic serve/fetch policy for one cache lookup.

This module holds *no* I/O.  The orchestrator gathers the inputs (cache
lookup, network state, debounce status) and executes the chosen action.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from skyecache.models.network import NetworkState


class SyncAction(StrEnum):
    SERVE = "serve"
    SERVE_OFFLINE = "serve_offline"
    SERVE_AND_REFRESH = "serve_and_refresh"
    FETCH = "fetch"
    FAIL_OFFLINE = "fail_offline"


def is_expired(now: datetime, expires_at: datetime) -> bool:
    return now >= expires_at


def choose_action(
    *,
    has_entry: bool,
    is_fresh: bool,
    network: NetworkState,
    force_refresh: bool,
    debounced: bool,
    background_refresh: bool,
) -> SyncAction:
    """Decide what a ``get_or_refresh`` call does with what it found.

    Policy:
    - Offline: serve any entry, fresh or expired; fail without fetching if none.
    - Forced: fetch, unless an entry exists and the link is slow or the key
      was fetched within the debounce window; then serve it and refresh
      in the background.
    - Fresh entry: serve.
    - Expired entry: serve and refresh in the background.  With background
      refresh disabled it is fetched in line, except on a slow link, where
      it is still served at once and refreshed in the background.
    - No entry: fetch.
    """
    if not network.is_online:
        return SyncAction.SERVE_OFFLINE if has_entry else SyncAction.FAIL_OFFLINE

    if force_refresh:
        if has_entry and (network.is_slow or debounced):
            return SyncAction.SERVE_AND_REFRESH
        return SyncAction.FETCH

    if not has_entry:
        return SyncAction.FETCH
    if is_fresh:
        return SyncAction.SERVE
    if background_refresh or network.is_slow:
        return SyncAction.SERVE_AND_REFRESH
    return SyncAction.FETCH
