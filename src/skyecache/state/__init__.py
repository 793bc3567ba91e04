"""Network state and the serve/fetch policy.

The orchestrator consults this package to decide, for each lookup,
whether to serve cached data, fetch, or fail fast while offline.
"""

from skyecache.state.network import NetworkMonitor, is_slow_connection
from skyecache.state.policy import SyncAction, choose_action, is_expired

__all__ = [
    "NetworkMonitor",
    "SyncAction",
    "choose_action",
    "is_expired",
    "is_slow_connection",
]
