"""Async client for the hosted roster backend's REST interface.

The backend exposes three tables (``rosters``, ``employees``, ``locations``)
through a PostgREST-style API under ``<url>/rest/v1/``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from errors import RemoteStoreError, RemoteUnavailableError


logger = logging.getLogger(__name__)

ROSTERS_TABLE = "rosters"
EMPLOYEES_TABLE = "employees"
LOCATIONS_TABLE = "locations"

# Responses meaning "the table is not there yet"; the connection still counts as usable.
MISSING_RELATION_CODES = {"42P01", "PGRST205", "PGRST116"}

TABLE_SCHEMAS: Dict[str, str] = {
    ROSTERS_TABLE: (
        "id UUID DEFAULT gen_random_uuid() PRIMARY KEY, location_id TEXT NOT NULL, "
        "week_key TEXT NOT NULL, data JSONB NOT NULL, "
        "updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(), UNIQUE(location_id, week_key)"
    ),
    EMPLOYEES_TABLE: (
        "id UUID DEFAULT gen_random_uuid() PRIMARY KEY, location_id TEXT NOT NULL, "
        "employees JSONB NOT NULL, updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(), UNIQUE(location_id)"
    ),
    LOCATIONS_TABLE: (
        "id UUID DEFAULT gen_random_uuid() PRIMARY KEY, location_id TEXT NOT NULL, "
        "locations JSONB NOT NULL, updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(), UNIQUE(location_id)"
    ),
}


# Server-side updated_at stamp, applied on insert and update.
UPDATED_AT_TRIGGER = (
    "CREATE OR REPLACE FUNCTION touch_updated_at() RETURNS trigger AS $$ "
    "BEGIN NEW.updated_at = NOW(); RETURN NEW; END; $$ LANGUAGE plpgsql; "
    "CREATE TRIGGER {table}_touch_updated_at BEFORE INSERT OR UPDATE ON {table} "
    "FOR EACH ROW EXECUTE FUNCTION touch_updated_at();"
)


def create_table_sql(table: str) -> str:
    return f"CREATE TABLE {table} ({TABLE_SCHEMAS[table]}); " + UPDATED_AT_TRIGGER.format(table=table)


def is_missing_relation(error: RemoteStoreError) -> bool:
    return bool(error.code) and error.code in MISSING_RELATION_CODES


class RemoteStore:
    def __init__(
        self,
        url: str,
        key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.key = key
        headers = {
            "apikey": key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if key:
            headers["Authorization"] = f"Bearer {key}"
        self._client = httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, table, params=params, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise RemoteUnavailableError(f"{method} {table} timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(f"{method} {table} failed: {exc}") from exc
        if response.is_error:
            raise self._error_from_response(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(
                f"{method} {table} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RemoteStoreError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.reason_phrase or f"HTTP {response.status_code}"
        error_cls = RemoteUnavailableError if response.status_code >= 500 else RemoteStoreError
        return error_cls(
            message,
            code=body.get("code"),
            status_code=response.status_code,
            details=body.get("details"),
            hint=body.get("hint"),
        )

    async def probe(self, table: str = ROSTERS_TABLE) -> None:
        """Issue a minimal read against ``table``; raises on any error response."""
        await self._request("GET", table, params={"select": "location_id", "limit": "1"})

    async def _fetch_one(self, table: str, column: str, filters: Dict[str, str]) -> Optional[Any]:
        params = {"select": column, "limit": "1"}
        params.update({name: f"eq.{value}" for name, value in filters.items()})
        rows = await self._request("GET", table, params=params)
        if not rows:
            return None
        return rows[0].get(column)

    async def _upsert(self, table: str, conflict: str, row: Dict[str, Any]) -> None:
        await self._request(
            "POST",
            table,
            params={"on_conflict": conflict},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def fetch_roster(self, location_id: str, week_key: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(ROSTERS_TABLE, "data", {"location_id": location_id, "week_key": week_key})

    async def upsert_roster(self, location_id: str, week_key: str, data: Dict[str, Any]) -> None:
        await self._upsert(
            ROSTERS_TABLE,
            "location_id,week_key",
            {"location_id": location_id, "week_key": week_key, "data": data},
        )

    async def fetch_employees(self, location_id: str) -> Optional[List[str]]:
        return await self._fetch_one(EMPLOYEES_TABLE, "employees", {"location_id": location_id})

    async def upsert_employees(self, location_id: str, employees: List[str]) -> None:
        await self._upsert(EMPLOYEES_TABLE, "location_id", {"location_id": location_id, "employees": employees})

    async def fetch_locations(self, location_id: str) -> Optional[List[str]]:
        return await self._fetch_one(LOCATIONS_TABLE, "locations", {"location_id": location_id})

    async def upsert_locations(self, location_id: str, locations: List[str]) -> None:
        await self._upsert(LOCATIONS_TABLE, "location_id", {"location_id": location_id, "locations": locations})

    async def latest_change(self, table: str) -> Optional[str]:
        """Return the newest server-side ``updated_at`` in ``table``, or ``None`` when it is empty."""
        rows = await self._request(
            "GET", table, params={"select": "updated_at", "order": "updated_at.desc", "limit": "1"}
        )
        if not rows:
            return None
        return rows[0].get("updated_at")

    async def fetch_changes(self, table: str, since: Optional[str]) -> List[Dict[str, Any]]:
        """Return rows of ``table`` updated after the server timestamp ``since`` (all rows for ``None``), oldest first."""
        params = {"select": "*", "order": "updated_at.asc"}
        if since is not None:
            params["updated_at"] = f"gt.{since}"
        rows = await self._request("GET", table, params=params)
        return list(rows or [])
