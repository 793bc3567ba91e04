"""Offline-first weather retrieval: cache lookup, fetch, write-through, fallback."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TypeVar

import aiohttp

from skyecache._cache import CacheKey
from skyecache._transport import OpenWeatherTransport, WeatherFetcher
from skyecache.context import AppContext
from skyecache.exceptions import (
    SkyeCacheUnavailableError,
    SkyeError,
    SkyeNoDataNoConnectionError,
    SkyeTransportError,
    SkyeUpstreamError,
    SkyeValidationError,
)
from skyecache.models.cache import DataKind, UnitSystem
from skyecache.models.location import Location, LocationHint
from skyecache.models.result import CacheInfo, SyncResult
from skyecache.models.search import SearchType
from skyecache.resolver import coordinate_key, validate_coordinates
from skyecache.state.network import NetworkMonitor
from skyecache.state.policy import SyncAction, choose_action, is_expired

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _Cached:
    """An entry found by the two-level lookup."""

    payload: dict[str, Any]
    written_at: datetime
    expires_at: datetime
    source: str

    def is_fresh(self, now: datetime) -> bool:
        return not is_expired(now, self.expires_at)


def _parse_kind(kind: DataKind | str) -> DataKind:
    try:
        return DataKind(kind)
    except ValueError as exc:
        raise SkyeValidationError(f"Unknown data kind {kind!r}") from exc


def _parse_units(unit_system: UnitSystem | str) -> UnitSystem:
    try:
        return UnitSystem(unit_system)
    except ValueError as exc:
        raise SkyeValidationError(f"Unknown unit system {unit_system!r}") from exc


class SyncOrchestrator:
    """Serve weather from cache when possible, fetch when needed.

    Usage::

        context = AppContext.from_config(SkyeConfig.from_env())
        async with SyncOrchestrator(context) as engine:
            result = await engine.get_or_refresh(51.5074, -0.1278, "current")

    Parameters
    ----------
    context : AppContext
        Shared database, caches and network monitor.
    fetcher : WeatherFetcher or None
        Remote source.  Defaults to :class:`OpenWeatherTransport` over an
        aiohttp session created on enter.
    session : aiohttp.ClientSession or None
        Session for the default transport.  Not closed on exit when
        supplied by the caller.
    """

    def __init__(
        self,
        context: AppContext,
        *,
        fetcher: WeatherFetcher | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._ctx = context
        self._config = context.config
        self._fetcher = fetcher
        self._external_session = session is not None
        self._http_session = session
        self._background: set[asyncio.Task[None]] = set()
        self._sweepers: list[asyncio.Task[None]] = []
        self._fetch_started: dict[CacheKey, datetime] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncOrchestrator:
        if self._fetcher is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._fetcher = OpenWeatherTransport(self._config, self._http_session)
        self._closed = False
        self._start_sweepers()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop sweepers, cancel background refreshes and release the HTTP session."""
        self._closed = True
        tasks = [*self._sweepers, *self._background]
        self._sweepers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._ctx.dedup.cancel_all()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _start_sweepers(self) -> None:
        if self._sweepers:
            return
        self._sweepers.append(
            asyncio.create_task(
                self._ctx.memory.run_sweeper(self._config.memory_sweep_interval),
                name="skyecache-memory-sweeper",
            )
        )
        if self._config.store_sweep_interval > 0:
            self._sweepers.append(
                asyncio.create_task(
                    self._run_store_sweeper(self._config.store_sweep_interval),
                    name="skyecache-store-sweeper",
                )
            )

    async def _run_store_sweeper(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self._ctx.store.sweep_expired()
            except SkyeCacheUnavailableError as exc:
                _logger.warning("Persistent cache sweep failed: %s", exc)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def context(self) -> AppContext:
        return self._ctx

    @property
    def network(self) -> NetworkMonitor:
        return self._ctx.network

    def _require_fetcher(self) -> WeatherFetcher:
        if self._fetcher is None:
            raise SkyeError("Orchestrator not initialized. Use 'async with SyncOrchestrator(...) as engine:'")
        return self._fetcher

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def get_or_refresh(
        self,
        latitude: float,
        longitude: float,
        kind: DataKind | str,
        *,
        force_refresh: bool = False,
        unit_system: UnitSystem | str | None = None,
        hint: LocationHint | None = None,
    ) -> SyncResult:
        """Return weather for a coordinate pair, from cache or upstream.

        Parameters
        ----------
        latitude, longitude : float
            Coordinates in degrees.
        kind : DataKind or str
            ``"current"`` or ``"forecast"``.
        force_refresh : bool
            Bypass a fresh cache entry.
        unit_system : UnitSystem, str or None
            Units to request; defaults to the configured unit system.
            An entry stored in other units is a miss.
        hint : LocationHint or None
            Naming for a location seen for the first time.

        Returns
        -------
        SyncResult
            Payload with provenance flags.

        Raises
        ------
        SkyeValidationError
            Bad coordinates, kind or unit system.
        SkyeNoDataNoConnectionError
            Offline with nothing cached.
        SkyeTransportError
            The fetch failed and nothing was cached to fall back on.
        """
        data_kind = _parse_kind(kind)
        units = _parse_units(unit_system if unit_system is not None else self._config.unit_system)
        lat, lon = validate_coordinates(latitude, longitude)

        location_id = self._resolve(lat, lon, hint)
        key = CacheKey(
            location_id or coordinate_key(lat, lon, self._config.coordinate_tolerance),
            data_kind,
            units,
        )
        cached = self._lookup(key, location_id)
        now = self._ctx.clock()
        network = self._ctx.network.state
        debounced = self._is_debounced(key, now)

        action = choose_action(
            has_entry=cached is not None,
            is_fresh=cached is not None and cached.is_fresh(now),
            network=network,
            force_refresh=force_refresh,
            debounced=debounced,
            background_refresh=self._config.background_refresh,
        )
        _logger.debug(
            "%s/%s: %s (%s)",
            key.location_id,
            data_kind.value,
            action.value,
            cached.source if cached is not None else "miss",
        )

        if action is SyncAction.FAIL_OFFLINE:
            raise SkyeNoDataNoConnectionError(
                f"No cached {data_kind.value} data for ({lat:.4f}, {lon:.4f}) and the network is offline",
                location_id=location_id,
                kind=data_kind.value,
            )

        if cached is not None and action is SyncAction.SERVE_OFFLINE:
            return self._cached_result(key, location_id, cached, is_stale=True, is_offline=True)

        if cached is not None and action is SyncAction.SERVE:
            return self._cached_result(key, location_id, cached, is_stale=False)

        if cached is not None and action is SyncAction.SERVE_AND_REFRESH:
            if not debounced:
                self._schedule_refresh(key, lat, lon, location_id)
            return self._cached_result(key, location_id, cached, is_stale=not cached.is_fresh(now))

        try:
            return await self._fetch_shared(key, lat, lon, location_id)
        except SkyeTransportError as exc:
            if cached is None:
                raise
            _logger.info(
                "Fetch for %s/%s failed, serving cached data: %s",
                key.location_id,
                data_kind.value,
                exc,
            )
            return self._cached_result(key, location_id, cached, is_stale=True, error=str(exc))

    def _resolve(self, latitude: float, longitude: float, hint: LocationHint | None) -> str | None:
        try:
            return self._ctx.resolver.resolve(latitude, longitude, hint)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Location registry unavailable, continuing uncached: %s", exc)
            return None

    def _lookup(self, key: CacheKey, location_id: str | None) -> _Cached | None:
        """Memory first, then the persistent store.  Storage failures are misses."""
        memory_entry = self._ctx.memory.get_entry(key)
        if memory_entry is not None:
            return _Cached(memory_entry.payload, memory_entry.inserted_at, memory_entry.expires_at, "memory")
        if location_id is None:
            return None

        try:
            stored = self._ctx.store.get(location_id, key.kind, key.unit_system)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Persistent cache unavailable, treating as miss: %s", exc)
            return None
        if stored is None:
            return None

        if stored.is_fresh(self._ctx.clock()):
            lifetime = (stored.expires_at - stored.written_at).total_seconds()
            self._ctx.memory.put(key, stored.payload, lifetime, inserted_at=stored.written_at)
        return _Cached(stored.payload, stored.written_at, stored.expires_at, "store")

    def _cached_result(
        self,
        key: CacheKey,
        location_id: str | None,
        cached: _Cached,
        *,
        is_stale: bool,
        is_offline: bool = False,
        error: str | None = None,
    ) -> SyncResult:
        return SyncResult(
            payload=copy.deepcopy(cached.payload),
            is_from_cache=True,
            is_stale=is_stale,
            is_offline=is_offline,
            location_id=location_id,
            kind=key.kind,
            unit_system=key.unit_system,
            fetched_at=cached.written_at,
            error=error,
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _is_debounced(self, key: CacheKey, now: datetime) -> bool:
        started = self._fetch_started.get(key)
        if started is None:
            return False
        return (now - started).total_seconds() < self._config.debounce_window

    def _mark_fetch_started(self, key: CacheKey, now: datetime) -> None:
        horizon = now - timedelta(seconds=self._config.debounce_window)
        for old_key in [k for k, started in self._fetch_started.items() if started < horizon]:
            del self._fetch_started[old_key]
        self._fetch_started[key] = now

    async def _call_remote(self, factory: Callable[[], Awaitable[T]], context: str) -> T:
        """Run one upstream call under the retry policy, each attempt time-bounded."""

        async def attempt() -> T:
            async with asyncio.timeout(self._config.request_timeout):
                return await factory()

        return await self._ctx.retry.execute(attempt, context=context)

    async def _fetch_shared(
        self,
        key: CacheKey,
        latitude: float,
        longitude: float,
        location_id: str | None,
    ) -> SyncResult:
        """Fetch through the deduplicator; the single winner writes through."""
        fetcher = self._require_fetcher()

        async def run() -> tuple[dict[str, Any], datetime]:
            self._mark_fetch_started(key, self._ctx.clock())
            payload = await self._call_remote(
                lambda: fetcher.fetch(latitude, longitude, key.kind, key.unit_system),
                f"{key.kind.value} fetch",
            )
            if not isinstance(payload, dict):
                raise SkyeUpstreamError(
                    f"Fetcher returned {type(payload).__name__} instead of a JSON object",
                    endpoint=key.kind.value,
                )
            fetched_at = self._ctx.clock()
            self._write_through(key, location_id, payload)
            return payload, fetched_at

        payload, fetched_at = await self._ctx.dedup.run_exclusive(key, run)
        return SyncResult(
            payload=copy.deepcopy(payload),
            is_from_cache=False,
            location_id=location_id,
            kind=key.kind,
            unit_system=key.unit_system,
            fetched_at=fetched_at,
        )

    def _write_through(self, key: CacheKey, location_id: str | None, payload: dict[str, Any]) -> None:
        ttl = self._config.ttl_for(key.kind)
        if location_id is not None:
            try:
                self._ctx.store.put(location_id, key.kind, payload, ttl, key.unit_system)
            except (SkyeCacheUnavailableError, SkyeValidationError) as exc:
                _logger.warning("Could not persist %s/%s: %s", location_id, key.kind.value, exc)
        self._ctx.memory.put(key, payload, ttl)

    def _schedule_refresh(
        self,
        key: CacheKey,
        latitude: float,
        longitude: float,
        location_id: str | None,
    ) -> bool:
        if self._closed or self._ctx.dedup.in_flight(key):
            return False
        task = asyncio.create_task(
            self._background_refresh(key, latitude, longitude, location_id),
            name=f"skyecache-refresh-{key.location_id}-{key.kind.value}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def _background_refresh(
        self,
        key: CacheKey,
        latitude: float,
        longitude: float,
        location_id: str | None,
    ) -> None:
        try:
            await self._fetch_shared(key, latitude, longitude, location_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.debug("Background refresh of %s/%s failed", key.location_id, key.kind.value, exc_info=True)

    async def wait_for_background(self) -> None:
        """Wait until every scheduled background refresh has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def background_tasks(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    async def fast_initialize(self, latitude: float, longitude: float) -> bool:
        """Warm the memory cache from disk without touching the network.

        Returns ``True`` when any data kind has a cached entry for the
        location.  Never creates a location.
        """
        lat, lon = validate_coordinates(latitude, longitude)
        try:
            location = self._ctx.resolver.find(lat, lon)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Fast initialize skipped, registry unavailable: %s", exc)
            return False
        if location is None:
            return False

        units = _parse_units(self._config.unit_system)
        found = False
        for kind in DataKind:
            if self._lookup(CacheKey(location.id, kind, units), location.id) is not None:
                found = True
        return found

    def invalidate(self, location_id: str, kind: DataKind | str | None = None) -> int:
        """Drop cached data for a location from both cache levels."""
        data_kind = _parse_kind(kind) if kind is not None else None
        removed = self._ctx.memory.invalidate(location_id, data_kind)
        for key in [k for k in self._fetch_started if k.location_id == location_id]:
            if data_kind is None or key.kind is data_kind:
                del self._fetch_started[key]
        try:
            removed += self._ctx.store.delete(location_id, data_kind)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Could not delete persisted cache for %s: %s", location_id, exc)
        return removed

    def clear_expired(self) -> int:
        """Sweep expired entries from both cache levels; returns the number removed."""
        removed = self._ctx.memory.sweep()
        try:
            removed += self._ctx.store.sweep_expired()
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Persistent cache sweep failed: %s", exc)
        return removed

    def cache_info(self) -> CacheInfo:
        memory_entries = len(self._ctx.memory)
        in_flight = len(self._ctx.dedup)
        try:
            return CacheInfo(
                total_locations=self._ctx.resolver.count(),
                favorite_locations=self._ctx.resolver.count(favorites_only=True),
                cached_entries=self._ctx.store.count(),
                fresh_entries=self._ctx.store.count(fresh_only=True),
                memory_entries=memory_entries,
                in_flight=in_flight,
            )
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Cache statistics unavailable: %s", exc)
            return CacheInfo(memory_entries=memory_entries, in_flight=in_flight)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def search_locations(self, query: str, limit: int = 5) -> list[Location]:
        """Search known locations, falling back to remote geocoding when online.

        Remote results are registered as locations and the query is
        recorded in the search history.
        """
        query = query.strip()
        if not query or limit <= 0:
            return []
        resolver = self._ctx.resolver

        try:
            local = resolver.search_by_text(query, limit)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Local location search unavailable: %s", exc)
            local = []
        if local:
            self._record_search(query, local[0].id)
            return local

        fetcher = self._require_fetcher()
        search = getattr(fetcher, "search", None)
        if not self._ctx.network.is_online or search is None:
            return []

        results = await self._call_remote(lambda: search(query, limit), "geocoding search")
        locations: list[Location] = []
        for result in results[:limit]:
            try:
                locations.append(resolver.resolve_location(result.latitude, result.longitude, hint=result))
            except SkyeValidationError:
                _logger.debug("Ignoring geocoding result with bad coordinates: %s", result)
            except SkyeCacheUnavailableError as exc:
                _logger.warning("Could not register geocoding result: %s", exc)
                break
        self._record_search(query, locations[0].id if locations else None)
        return locations

    def _record_search(self, query: str, location_id: str | None) -> None:
        try:
            self._ctx.resolver.record_search(query, location_id, SearchType.MANUAL)
        except SkyeCacheUnavailableError as exc:
            _logger.warning("Could not record search history: %s", exc)

    async def refresh_all(self, latitude: float, longitude: float) -> dict[DataKind, SyncResult]:
        """Force-refresh every data kind concurrently; failures are logged and omitted."""
        lat, lon = validate_coordinates(latitude, longitude)
        kinds = list(DataKind)
        outcomes = await asyncio.gather(
            *(self.get_or_refresh(lat, lon, kind, force_refresh=True) for kind in kinds),
            return_exceptions=True,
        )
        results: dict[DataKind, SyncResult] = {}
        for kind, outcome in zip(kinds, outcomes, strict=True):
            if isinstance(outcome, SyncResult):
                results[kind] = outcome
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                _logger.warning("Refresh of %s for (%.4f, %.4f) failed: %s", kind.value, lat, lon, outcome)
        return results
