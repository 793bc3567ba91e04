"""Application-scoped wiring of the cache engine's shared components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from skyecache._cache import TTLCache
from skyecache._dedup import Deduplicator
from skyecache.config import SkyeConfig
from skyecache.models._base import utcnow
from skyecache.persistence.cache import PersistentStore
from skyecache.persistence.connection import Database
from skyecache.persistence.locations import LocationRepository
from skyecache.persistence.search_history import SearchHistoryRepository
from skyecache.resolver import LocationResolver
from skyecache.retry import RetryPolicy
from skyecache.state.network import NetworkMonitor

_logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything one process shares: database, caches, network status.

    Build it once with :meth:`from_config` and hand it to the
    orchestrator.  Tests construct it with an in-memory database and a
    controllable clock.
    """

    config: SkyeConfig
    database: Database
    store: PersistentStore
    resolver: LocationResolver
    memory: TTLCache
    dedup: Deduplicator
    retry: RetryPolicy
    network: NetworkMonitor
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def from_config(
        cls,
        config: SkyeConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
        database: Database | None = None,
        retry: RetryPolicy | None = None,
        network: NetworkMonitor | None = None,
    ) -> AppContext:
        db = database if database is not None else Database(config.database_path)
        resolver = LocationResolver(
            LocationRepository(db, scope=config.scope, clock=clock),
            SearchHistoryRepository(db, scope=config.scope, clock=clock),
            tolerance=config.coordinate_tolerance,
        )
        _logger.debug("Cache engine context for scope %r on %s", config.scope, db.path)
        return cls(
            config=config,
            database=db,
            store=PersistentStore(db, clock=clock),
            resolver=resolver,
            memory=TTLCache(clock=clock),
            dedup=Deduplicator(),
            retry=retry if retry is not None else RetryPolicy(config.retry),
            network=network if network is not None else NetworkMonitor(clock=clock),
            clock=clock,
        )

    def close(self) -> None:
        self.memory.clear()
        self.database.close()
