from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from hours import LEAVE_TYPES, normalize_leave_type, parse_clock
from errors import RosterValidationError


# location -> day label -> shifts (stored as plain dicts with camelCase keys)
WeekGrid = Dict[str, Dict[str, List[Dict[str, Any]]]]

DEFAULT_SCHEDULED_START = "09:00"
DEFAULT_SCHEDULED_END = "17:00"


@dataclass
class Shift:
    employee: str = ""
    scheduled_start: str = DEFAULT_SCHEDULED_START
    scheduled_end: str = DEFAULT_SCHEDULED_END
    actual_start: str = ""
    actual_end: str = ""
    leave_type: str = ""
    leave_hours: float = 0.0
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee": self.employee,
            "scheduledStart": self.scheduled_start,
            "scheduledEnd": self.scheduled_end,
            "actualStart": self.actual_start,
            "actualEnd": self.actual_end,
            "leaveType": self.leave_type,
            "leaveHours": self.leave_hours,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Shift":
        try:
            leave_hours = float(payload.get("leaveHours") or 0)
        except (TypeError, ValueError):
            leave_hours = 0.0
        return cls(
            employee=str(payload.get("employee") or ""),
            scheduled_start=str(payload.get("scheduledStart", DEFAULT_SCHEDULED_START) or ""),
            scheduled_end=str(payload.get("scheduledEnd", DEFAULT_SCHEDULED_END) or ""),
            actual_start=str(payload.get("actualStart") or ""),
            actual_end=str(payload.get("actualEnd") or ""),
            leave_type=normalize_leave_type(payload.get("leaveType")),
            leave_hours=leave_hours,
            notes=str(payload.get("notes") or ""),
        )

    def validate(self) -> "Shift":
        """Raise :class:`RosterValidationError` for an incomplete or malformed shift."""
        if not self.employee.strip():
            raise RosterValidationError("Please select an employee.", field="employee")
        for name in ("scheduled_start", "scheduled_end", "actual_start", "actual_end"):
            value = getattr(self, name)
            if not value:
                continue
            try:
                parse_clock(value)
            except ValueError as exc:
                raise RosterValidationError(str(exc), field=name) from exc
        if self.leave_type and self.leave_type not in LEAVE_TYPES:
            raise RosterValidationError(f"Unknown leave type '{self.leave_type}'.", field="leave_type")
        if self.leave_hours < 0:
            raise RosterValidationError("Leave hours cannot be negative.", field="leave_hours")
        return self


def default_shift(employee: str = "") -> Shift:
    return Shift(employee=employee)


def empty_week_grid(locations: Iterable[str], days: Iterable[str]) -> WeekGrid:
    """Return a grid with an empty shift list for every location/day pair."""
    day_list = list(days)
    return {location: {day: [] for day in day_list} for location in locations}


def ensure_cells(grid: Optional[Mapping[str, Any]], locations: Iterable[str], days: Iterable[str]) -> WeekGrid:
    """Return a copy of ``grid`` with any missing location/day cells filled in."""
    result: WeekGrid = copy.deepcopy(dict(grid or {}))
    day_list = list(days)
    for location in locations:
        cells = result.setdefault(location, {})
        for day in day_list:
            cells.setdefault(day, [])
    return result


def _as_record(shift: Shift | Mapping[str, Any]) -> Dict[str, Any]:
    if isinstance(shift, Shift):
        return shift.to_dict()
    return Shift.from_dict(shift).to_dict()


def upsert_shift(grid: Mapping[str, Any], location: str, day: str, shift: Shift | Mapping[str, Any]) -> WeekGrid:
    """Return a new grid with ``shift`` replacing the employee's shift in the cell, or appended."""
    record = _as_record(shift)
    result: WeekGrid = copy.deepcopy(dict(grid or {}))
    cell = result.setdefault(location, {}).setdefault(day, [])
    for index, existing in enumerate(cell):
        if existing.get("employee") == record["employee"]:
            cell[index] = record
            break
    else:
        cell.append(record)
    return result


def delete_shift(grid: Mapping[str, Any], location: str, day: str, employee: str) -> WeekGrid:
    result: WeekGrid = copy.deepcopy(dict(grid or {}))
    cells = result.get(location)
    if cells is None or day not in cells:
        return result
    cells[day] = [item for item in cells[day] if item.get("employee") != employee]
    return result


def find_shift(grid: Mapping[str, Any], location: str, day: str, employee: str) -> Optional[Dict[str, Any]]:
    for item in (grid.get(location) or {}).get(day, []) or []:
        if item.get("employee") == employee:
            return item
    return None


def rename_employee(grid: Mapping[str, Any], old_name: str, new_name: str) -> WeekGrid:
    result: WeekGrid = copy.deepcopy(dict(grid or {}))
    for cells in result.values():
        for shifts in cells.values():
            for item in shifts:
                if item.get("employee") == old_name:
                    item["employee"] = new_name
    return result


def rename_location(grid: Mapping[str, Any], old_name: str, new_name: str) -> WeekGrid:
    result: WeekGrid = copy.deepcopy(dict(grid or {}))
    if old_name in result and old_name != new_name:
        cells = result.pop(old_name)
        target = result.setdefault(new_name, {})
        for day, shifts in cells.items():
            target.setdefault(day, []).extend(shifts)
    return result
