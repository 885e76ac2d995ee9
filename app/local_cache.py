from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from database import CacheSessionLocal, get_cache_value, init_database, put_cache_value


logger = logging.getLogger(__name__)

APP_CONFIG_KEY = "app-config"


def roster_key(location_id: str, week_key: str) -> str:
    return f"{location_id}-{week_key}"


def employees_key(location_id: str) -> str:
    return f"{location_id}-employees"


def locations_key(location_id: str) -> str:
    return f"{location_id}-locations"


class LocalCache:
    """Flat string-keyed store of JSON blobs backed by the local SQLite cache."""

    def __init__(self, session_factory: Optional[Callable] = None) -> None:
        if session_factory is None:
            init_database()
            session_factory = CacheSessionLocal
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[Any]:
        with self._session_factory() as session:
            raw = get_cache_value(session, key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed cache entry %s: %s", key, exc)
            return None

    def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._session_factory() as session:
            put_cache_value(session, key, payload)
