"""Per-user session state and the actions that mutate it.

One :class:`RosterSession` is built per user session. Presentation code reads
its attributes and subscribes through :meth:`RosterSession.on_change`; all
mutations go through the async action methods, which persist via the
:class:`~roster_store.RosterStore`.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth import Authenticator, CredentialTableAuthenticator, hash_password
from errors import RosterValidationError
from events import EMPLOYEES_UPDATED, LOCATIONS_UPDATED, ORIGIN_REMOTE, ROSTER_UPDATED, ChangeEvent, ChangeListener
from hours import HoursBreakdown, ZERO_HOURS, shift_hours, summarize_week
from local_cache import APP_CONFIG_KEY
import roster
from roster import Shift, WeekGrid
from roster_store import RosterStore
from settings import Settings, settings
from week import (
    current_week_start,
    normalize_week_start,
    parse_week_key,
    shift_week,
    week_dates,
    week_day_labels,
    week_display_label,
    week_key,
    week_range_label,
)


logger = logging.getLogger(__name__)

SYNC_SYNCED = "synced"
SYNC_SYNCING = "syncing"
SYNC_OFFLINE = "offline"


@dataclass
class AppConfig:
    company_name: str
    system_title: str
    location_id: str = "main"
    timezone: str = "Australia/Melbourne"
    users: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "AppConfig":
        config = config or settings
        return cls(
            company_name=config.COMPANY_NAME,
            system_title=config.SYSTEM_TITLE,
            location_id=config.LOCATION_ID,
            timezone=config.TIMEZONE,
            users={config.ADMIN_USERNAME: hash_password(config.ADMIN_PASSWORD)},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "companyName": self.company_name,
            "systemTitle": self.system_title,
            "locationId": self.location_id,
            "timezone": self.timezone,
            "users": dict(self.users),
        }

    def merge(self, payload: Mapping[str, Any]) -> None:
        """Overlay a stored config record onto this one."""
        self.company_name = payload.get("companyName", self.company_name) or self.company_name
        self.system_title = payload.get("systemTitle", self.system_title) or self.system_title
        self.location_id = payload.get("locationId", self.location_id) or self.location_id
        self.timezone = payload.get("timezone", self.timezone) or self.timezone
        users = payload.get("users")
        if isinstance(users, dict) and users:
            self.users = {str(name): str(secret) for name, secret in users.items()}


def _clean_name(value: Optional[str], label: str) -> str:
    name = (value or "").strip()
    if not name:
        raise RosterValidationError(f"{label} name is required.", field="name")
    return name


class RosterSession:
    def __init__(
        self,
        store: RosterStore,
        *,
        config: Optional[AppConfig] = None,
        authenticator: Optional[Authenticator] = None,
        employees: Optional[List[str]] = None,
        locations: Optional[List[str]] = None,
        week_start: Optional[datetime.date] = None,
    ) -> None:
        self.store = store
        self.config = config or AppConfig.from_settings()
        self.authenticator = authenticator or CredentialTableAuthenticator(self.config.users)
        self.employees: List[str] = list(dict.fromkeys(employees or []))
        self.locations: List[str] = list(dict.fromkeys(locations or []))
        self.all_roster_data: Dict[str, WeekGrid] = {}
        self.public_holidays: Dict[str, str] = {}
        self.current_week_start = normalize_week_start(week_start or current_week_start(self.config.timezone))
        self.sync_status = SYNC_OFFLINE
        self.is_logged_in = False
        self.current_user = ""
        self._unsubscribe = store.on_change(self._on_store_change)

    # ------------------------------------------------------------------
    # Derived views

    @property
    def location_id(self) -> str:
        return self.config.location_id

    @property
    def week_key(self) -> str:
        return week_key(self.current_week_start)

    @property
    def days(self) -> List[str]:
        return week_day_labels(self.current_week_start)

    @property
    def week_range(self) -> str:
        return week_range_label(self.current_week_start)

    @property
    def week_display(self) -> str:
        return week_display_label(self.current_week_start)

    @property
    def current_grid(self) -> WeekGrid:
        grid = self.all_roster_data.get(self.week_key)
        if grid is None:
            grid = self.all_roster_data[self.week_key] = roster.empty_week_grid(self.locations, self.days)
        return grid

    def _days_for(self, key: str) -> List[str]:
        if key == self.week_key:
            return self.days
        return week_day_labels(parse_week_key(key))

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        return self.store.on_change(listener)

    # ------------------------------------------------------------------
    # Authentication

    def login(self, username: str, password: str) -> bool:
        if not self.authenticator.authenticate(username, password):
            logger.info("Rejected login for %r", username)
            return False
        self.is_logged_in = True
        self.current_user = username.strip()
        return True

    def logout(self) -> None:
        self.is_logged_in = False
        self.current_user = ""

    # ------------------------------------------------------------------
    # Startup

    async def load_saved_data(self) -> None:
        """Overlay stored config, employees and locations onto the defaults."""
        stored_config = await asyncio.to_thread(self.store.cache.get, APP_CONFIG_KEY)
        if isinstance(stored_config, dict):
            self.config.merge(stored_config)
            if isinstance(self.authenticator, CredentialTableAuthenticator):
                self.authenticator = CredentialTableAuthenticator(self.config.users)
        employees = await self.store.load_employees(self.location_id)
        if isinstance(employees, list):
            self.employees = list(dict.fromkeys(str(name) for name in employees))
        locations = await self.store.load_locations(self.location_id)
        if isinstance(locations, list):
            self.locations = list(dict.fromkeys(str(name) for name in locations))

    async def connect(self) -> bool:
        self.sync_status = SYNC_SYNCING
        connected = await self.store.initialize()
        self.sync_status = SYNC_SYNCED if connected else SYNC_OFFLINE
        return connected

    async def close(self) -> None:
        self._unsubscribe()
        await self.store.close()

    # ------------------------------------------------------------------
    # Weeks

    async def load_week(self) -> WeekGrid:
        key = self.week_key
        self.sync_status = SYNC_SYNCING
        try:
            saved = await self.store.load(self.location_id, key)
        except SQLAlchemyError:
            logger.exception("Failed to load roster data for %s", key)
            self.sync_status = SYNC_OFFLINE
            saved = None
        else:
            self.sync_status = SYNC_SYNCED if self.store.is_connected else SYNC_OFFLINE
        if isinstance(saved, dict):
            grid = roster.ensure_cells(saved, self.locations, self.days)
        else:
            grid = roster.empty_week_grid(self.locations, self.days)
        self.all_roster_data[key] = grid
        return grid

    async def navigate_week(self, direction: str) -> WeekGrid:
        self.current_week_start = shift_week(self.current_week_start, direction)
        return await self.load_week()

    async def go_to_week(self, date_value: datetime.date) -> WeekGrid:
        self.current_week_start = normalize_week_start(date_value)
        return await self.load_week()

    async def save_week(self) -> bool:
        self.sync_status = SYNC_SYNCING
        success = await self.store.save(self.location_id, self.week_key, self.current_grid)
        self.sync_status = SYNC_SYNCED if success else SYNC_OFFLINE
        return success

    # ------------------------------------------------------------------
    # Shifts

    def _check_cell(self, location: Optional[str], day: str) -> None:
        if not location:
            raise RosterValidationError("Please select both employee and location.", field="location")
        if location not in self.locations:
            raise RosterValidationError(f"Unknown location '{location}'.", field="location")
        if day not in self.days:
            raise RosterValidationError(f"'{day}' is not part of the week {self.week_range}.", field="day")

    def shift_for_editing(self, location: str, day: str, employee: str) -> Shift:
        """Return the employee's shift in the cell, or a fresh default shift to fill in."""
        self._check_cell(location, day)
        existing = roster.find_shift(self.current_grid, location, day, employee)
        if existing is None:
            return roster.default_shift(employee)
        return Shift.from_dict(existing)

    async def save_shift(self, location: Optional[str], day: str, shift: Shift | Mapping[str, Any]) -> bool:
        record = shift if isinstance(shift, Shift) else Shift.from_dict(shift)
        if not record.employee.strip():
            raise RosterValidationError("Please select both employee and location.", field="employee")
        self._check_cell(location, day)
        record.validate()
        self.all_roster_data[self.week_key] = roster.upsert_shift(self.current_grid, location, day, record)
        return await self.save_week()

    async def delete_shift(self, location: str, day: str, employee: str) -> bool:
        grid = self.current_grid
        if roster.find_shift(grid, location, day, employee) is None:
            return False
        self.all_roster_data[self.week_key] = roster.delete_shift(grid, location, day, employee)
        return await self.save_week()

    # ------------------------------------------------------------------
    # Employees & locations

    async def _persist_employees(self) -> bool:
        self.sync_status = SYNC_SYNCING
        success = await self.store.save_employees(self.location_id, self.employees)
        self.sync_status = SYNC_SYNCED if success else SYNC_OFFLINE
        return success

    async def _persist_locations(self) -> bool:
        self.sync_status = SYNC_SYNCING
        success = await self.store.save_locations(self.location_id, self.locations)
        self.sync_status = SYNC_SYNCED if success else SYNC_OFFLINE
        return success

    async def save_employee(self, name: str, previous: Optional[str] = None) -> bool:
        name = _clean_name(name, "Employee")
        if previous and previous in self.employees:
            if name != previous and name in self.employees:
                raise RosterValidationError(f"Employee '{name}' already exists.", field="name")
            self.employees[self.employees.index(previous)] = name
            grid = self.all_roster_data.get(self.week_key)
            if grid is not None and name != previous:
                renamed = roster.rename_employee(grid, previous, name)
                if renamed != grid:
                    self.all_roster_data[self.week_key] = renamed
                    await self.save_week()
        elif name not in self.employees:
            self.employees.append(name)
        return await self._persist_employees()

    async def delete_employee(self, name: str) -> bool:
        self.employees = [employee for employee in self.employees if employee != name]
        return await self._persist_employees()

    async def save_location(self, name: str, previous: Optional[str] = None) -> bool:
        name = _clean_name(name, "Location")
        if previous and previous in self.locations:
            if name != previous and name in self.locations:
                raise RosterValidationError(f"Location '{name}' already exists.", field="name")
            self.locations[self.locations.index(previous)] = name
            grid = self.all_roster_data.get(self.week_key)
            if grid is not None and name != previous and previous in grid:
                self.all_roster_data[self.week_key] = roster.rename_location(grid, previous, name)
                await self.save_week()
        elif name not in self.locations:
            self.locations.append(name)
        grid = self.all_roster_data.get(self.week_key)
        if grid is not None:
            self.all_roster_data[self.week_key] = roster.ensure_cells(grid, self.locations, self.days)
        return await self._persist_locations()

    async def delete_location(self, name: str) -> bool:
        self.locations = [location for location in self.locations if location != name]
        return await self._persist_locations()

    # ------------------------------------------------------------------
    # Public holidays & hours

    def set_public_holiday(self, date_value: datetime.date, name: str = "Public Holiday") -> None:
        self.public_holidays[date_value.isoformat()] = name

    def clear_public_holiday(self, date_value: datetime.date) -> None:
        self.public_holidays.pop(date_value.isoformat(), None)

    def holiday_days(self) -> List[str]:
        """Day labels of the current week that fall on a public holiday."""
        return [
            label
            for label, day in zip(self.days, week_dates(self.current_week_start))
            if day.isoformat() in self.public_holidays
        ]

    def hours_for_shift(self, location: str, day: str, employee: str) -> HoursBreakdown:
        shift = roster.find_shift(self.current_grid, location, day, employee)
        if shift is None:
            return ZERO_HOURS
        return shift_hours(shift, day, day in self.holiday_days())

    def week_hours(self) -> Dict[str, HoursBreakdown]:
        totals = summarize_week(self.current_grid, self.days, self.holiday_days())
        result = {employee: totals.get(employee, ZERO_HOURS) for employee in self.employees}
        for employee, hours in totals.items():
            result.setdefault(employee, hours)
        return result

    # ------------------------------------------------------------------
    # Settings & export

    async def save_app_config(self, company_name: Optional[str] = None, system_title: Optional[str] = None) -> None:
        if company_name is not None:
            self.config.company_name = _clean_name(company_name, "Company")
        if system_title is not None:
            self.config.system_title = _clean_name(system_title, "System title")
        await asyncio.to_thread(self.store.cache.put, APP_CONFIG_KEY, self.config.to_dict())

    def export_payload(self) -> Dict[str, Any]:
        return {
            "employees": list(self.employees),
            "locations": list(self.locations),
            "allRosterData": self.all_roster_data,
            "publicHolidays": dict(self.public_holidays),
            "exportDate": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "weekRange": self.week_range,
        }

    # ------------------------------------------------------------------
    # Change reconciliation

    def _on_store_change(self, event: ChangeEvent) -> None:
        if event.origin == ORIGIN_REMOTE and event.location_id == self.location_id:
            if event.kind == ROSTER_UPDATED and event.week_key in self.all_roster_data and isinstance(event.data, dict):
                self.all_roster_data[event.week_key] = roster.ensure_cells(
                    event.data, self.locations, self._days_for(event.week_key)
                )
            elif event.kind == EMPLOYEES_UPDATED and isinstance(event.data, list):
                self.employees = list(dict.fromkeys(str(name) for name in event.data))
            elif event.kind == LOCATIONS_UPDATED and isinstance(event.data, list):
                self.locations = list(dict.fromkeys(str(name) for name in event.data))
        if self.store.is_connected:
            self.sync_status = SYNC_SYNCED
