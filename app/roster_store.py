"""Weekly roster persistence: remote-first writes mirrored into the local cache.

Every write lands in the local cache whether or not the backend accepted it,
so a ``False`` result means "saved locally only" rather than a lost write.
Reads prefer the backend and fall back to the cache.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from change_feed import ChangeFeed
from errors import ConnectionProbeError, RemoteStoreError
from events import (
    EMPLOYEES_UPDATED,
    LOCATIONS_UPDATED,
    ORIGIN_LOCAL,
    ROSTER_UPDATED,
    ChangeEvent,
    ChangeListener,
)
from local_cache import LocalCache, employees_key, locations_key, roster_key
from remote_store import ROSTERS_TABLE, TABLE_SCHEMAS, RemoteStore, create_table_sql, is_missing_relation
import roster
from roster import Shift, WeekGrid
from settings import Settings, resolve_supabase_url, settings


logger = logging.getLogger(__name__)

RemoteFactory = Callable[[], RemoteStore]


class RosterStore:
    def __init__(
        self,
        cache: LocalCache,
        remote_factory: Optional[RemoteFactory] = None,
        *,
        poll_interval: float = 5.0,
        enable_change_feed: bool = True,
    ) -> None:
        self.cache = cache
        self._remote_factory = remote_factory
        self._poll_interval = poll_interval
        self._enable_change_feed = enable_change_feed
        self.remote: Optional[RemoteStore] = None
        self.change_feed: Optional[ChangeFeed] = None
        self._connected = False
        self.last_error: Optional[ConnectionProbeError] = None
        self._listeners: Dict[int, ChangeListener] = {}
        self._next_token = 0
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Connection lifecycle

    async def initialize(self) -> bool:
        """Connect to the backend; returns whether it is usable."""
        if self._remote_factory is None:
            logger.info("Remote store disabled; running from the local cache only")
            return False
        await self._drop_remote()
        remote = self._remote_factory()
        try:
            await remote.probe(ROSTERS_TABLE)
        except RemoteStoreError as exc:
            if not is_missing_relation(exc):
                self.last_error = ConnectionProbeError(
                    exc.message, code=exc.code, status_code=exc.status_code, details=exc.details, hint=exc.hint
                )
                logger.error("Database connection failed: %s", self.last_error)
                await remote.close()
                return False
            logger.warning(
                "Table '%s' is missing: %s. Create it with: %s", ROSTERS_TABLE, exc, create_table_sql(ROSTERS_TABLE)
            )
        self.remote = remote
        self._connected = True
        self.last_error = None
        logger.info("Remote store connected at %s", remote.url)
        await self._check_tables()
        if self._enable_change_feed:
            self.change_feed = ChangeFeed(remote, self.notify, interval=self._poll_interval)
            await self.change_feed.prime()
            self.change_feed.start()
        return True

    async def _check_tables(self) -> None:
        for table in TABLE_SCHEMAS:
            if table == ROSTERS_TABLE:
                continue
            try:
                await self.remote.probe(table)
            except RemoteStoreError as exc:
                if is_missing_relation(exc):
                    logger.warning("Table '%s' doesn't exist. Create it with: %s", table, create_table_sql(table))
                else:
                    logger.warning("Could not verify table %s: %s", table, exc)

    async def _drop_remote(self) -> None:
        if self.change_feed is not None:
            await self.change_feed.stop()
            self.change_feed = None
        if self.remote is not None:
            await self.remote.close()
            self.remote = None
        self._connected = False

    async def close(self) -> None:
        await self._drop_remote()

    # ------------------------------------------------------------------
    # Listeners

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def notify(self, event: ChangeEvent) -> None:
        # Iterate a snapshot so listeners may unsubscribe mid-broadcast; anyone
        # removed before their turn is skipped.
        for token, listener in list(self._listeners.items()):
            if token not in self._listeners:
                continue
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Change listener failed for %s", event.kind)

    # ------------------------------------------------------------------
    # Persistence helpers

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def _read_cache(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self.cache.get, key)

    async def _write_cache(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self.cache.put, key, value)

    async def _save(
        self,
        key: str,
        value: Any,
        remote_write: Callable[[RemoteStore], Awaitable[None]],
        event: ChangeEvent,
        label: str,
    ) -> bool:
        async with self._lock_for(key):
            success = False
            if self._connected and self.remote is not None:
                try:
                    await remote_write(self.remote)
                    success = True
                    logger.info("%s saved to remote store", label)
                except RemoteStoreError as exc:
                    logger.error("Failed to save %s remotely: %s", label, exc)
            await self._write_cache(key, value)
            if not success:
                logger.warning("%s saved locally only", label)
        self.notify(event)
        return success

    async def _load(
        self,
        key: str,
        remote_read: Callable[[RemoteStore], Awaitable[Optional[Any]]],
        label: str,
    ) -> Optional[Any]:
        if self._connected and self.remote is not None:
            try:
                value = await remote_read(self.remote)
            except RemoteStoreError as exc:
                logger.error("Failed to fetch %s: %s", label, exc)
            else:
                if value is not None:
                    logger.debug("%s loaded from remote store", label)
                    return value
        cached = await self._read_cache(key)
        if cached is not None:
            logger.debug("Using cached %s", label)
        return cached

    # ------------------------------------------------------------------
    # Rosters

    async def load(self, location_id: str, week_key: str) -> Optional[WeekGrid]:
        return await self._load(
            roster_key(location_id, week_key),
            lambda remote: remote.fetch_roster(location_id, week_key),
            f"roster {location_id}/{week_key}",
        )

    async def save(self, location_id: str, week_key: str, grid: WeekGrid) -> bool:
        return await self._save(
            roster_key(location_id, week_key),
            grid,
            lambda remote: remote.upsert_roster(location_id, week_key, grid),
            ChangeEvent(kind=ROSTER_UPDATED, location_id=location_id, week_key=week_key, data=grid, origin=ORIGIN_LOCAL),
            f"roster {location_id}/{week_key}",
        )

    @staticmethod
    def upsert_shift(grid: WeekGrid, location: str, day: str, shift: Shift | Dict[str, Any]) -> WeekGrid:
        return roster.upsert_shift(grid, location, day, shift)

    @staticmethod
    def delete_shift(grid: WeekGrid, location: str, day: str, employee: str) -> WeekGrid:
        return roster.delete_shift(grid, location, day, employee)

    # ------------------------------------------------------------------
    # Employees & locations

    async def load_employees(self, location_id: str) -> Optional[List[str]]:
        return await self._load(
            employees_key(location_id),
            lambda remote: remote.fetch_employees(location_id),
            f"employees for {location_id}",
        )

    async def save_employees(self, location_id: str, employees: List[str]) -> bool:
        employees = list(employees)
        return await self._save(
            employees_key(location_id),
            employees,
            lambda remote: remote.upsert_employees(location_id, employees),
            ChangeEvent(kind=EMPLOYEES_UPDATED, location_id=location_id, data=employees, origin=ORIGIN_LOCAL),
            f"employees for {location_id}",
        )

    async def load_locations(self, location_id: str) -> Optional[List[str]]:
        return await self._load(
            locations_key(location_id),
            lambda remote: remote.fetch_locations(location_id),
            f"locations for {location_id}",
        )

    async def save_locations(self, location_id: str, locations: List[str]) -> bool:
        locations = list(locations)
        return await self._save(
            locations_key(location_id),
            locations,
            lambda remote: remote.upsert_locations(location_id, locations),
            ChangeEvent(kind=LOCATIONS_UPDATED, location_id=location_id, data=locations, origin=ORIGIN_LOCAL),
            f"locations for {location_id}",
        )


def build_store(config: Optional[Settings] = None, cache: Optional[LocalCache] = None) -> RosterStore:
    """Build a store wired to the configured backend."""
    config = config or settings
    remote_factory: Optional[RemoteFactory] = None
    url = resolve_supabase_url(config.DATABASE_URL, config.SUPABASE_URL)
    if config.REMOTE_ENABLED and url:
        remote_factory = functools.partial(
            RemoteStore,
            url,
            config.SUPABASE_ANON_KEY,
            timeout=config.REMOTE_TIMEOUT_SECONDS,
        )
    return RosterStore(
        cache or LocalCache(),
        remote_factory,
        poll_interval=config.CHANGE_POLL_SECONDS,
    )
