from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


ROSTER_UPDATED = "roster-updated"
EMPLOYEES_UPDATED = "employees-updated"
LOCATIONS_UPDATED = "locations-updated"

ORIGIN_LOCAL = "local"
ORIGIN_REMOTE = "remote"


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    location_id: Optional[str] = None
    week_key: Optional[str] = None
    data: Any = None
    origin: str = ORIGIN_LOCAL


ChangeListener = Callable[[ChangeEvent], None]
