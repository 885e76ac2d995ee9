"""Polling change feed standing in for the backend's realtime channel."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from errors import RemoteStoreError
from events import EMPLOYEES_UPDATED, ORIGIN_REMOTE, ROSTER_UPDATED, ChangeEvent
from remote_store import EMPLOYEES_TABLE, ROSTERS_TABLE, RemoteStore


logger = logging.getLogger(__name__)

WATCHED_TABLES = (ROSTERS_TABLE, EMPLOYEES_TABLE)


def _row_to_event(table: str, row: Dict) -> ChangeEvent:
    if table == ROSTERS_TABLE:
        return ChangeEvent(
            kind=ROSTER_UPDATED,
            location_id=row.get("location_id"),
            week_key=row.get("week_key"),
            data=row.get("data"),
            origin=ORIGIN_REMOTE,
        )
    return ChangeEvent(
        kind=EMPLOYEES_UPDATED,
        location_id=row.get("location_id"),
        data=row.get("employees"),
        origin=ORIGIN_REMOTE,
    )


class ChangeFeed:
    """Deliver rows changed on the backend as remote change events.

    Cursors hold server-side ``updated_at`` values only. Without an explicit
    ``since`` each table's cursor starts at the newest stamp already stored on
    the server, never at this machine's clock.
    """

    def __init__(
        self,
        remote: RemoteStore,
        on_event: Callable[[ChangeEvent], None],
        *,
        interval: float = 5.0,
        since: Optional[str] = None,
    ) -> None:
        self.remote = remote
        self.on_event = on_event
        self.interval = interval
        self._cursors: Dict[str, Optional[str]] = {table: since for table in WATCHED_TABLES}
        self._primed: Set[str] = set(WATCHED_TABLES) if since else set()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def prime(self) -> None:
        """Start unprimed cursors at the newest change already stored on the server."""
        for table in WATCHED_TABLES:
            if table in self._primed:
                continue
            try:
                self._cursors[table] = await self.remote.latest_change(table)
            except RemoteStoreError as exc:
                logger.warning("Could not read the latest change on %s: %s", table, exc)
                continue
            self._primed.add(table)

    async def poll_once(self) -> List[ChangeEvent]:
        """Fetch rows changed since the last poll and deliver them to ``on_event``."""
        delivered: List[ChangeEvent] = []
        await self.prime()
        for table in WATCHED_TABLES:
            if table not in self._primed:
                continue
            try:
                rows = await self.remote.fetch_changes(table, self._cursors[table])
            except RemoteStoreError as exc:
                logger.warning("Change poll on %s failed: %s", table, exc)
                continue
            for row in rows:
                stamp = row.get("updated_at")
                if stamp and (self._cursors[table] is None or stamp > self._cursors[table]):
                    self._cursors[table] = stamp
                event = _row_to_event(table, row)
                self.on_event(event)
                delivered.append(event)
        return delivered

    async def _run(self) -> None:
        logger.info("Change feed started (every %.1fs)", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Change feed stopped")
