"""Hour bucket calculations for roster shifts.

Times are wall-clock ``HH:MM`` strings placed on a shared anchor day, so a
shift that ends before it starts (or crosses midnight) produces no hours.
"""

from __future__ import annotations

import datetime
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Mapping, Optional


LEAVE_TYPES = ("annual", "sick", "public")
DEFAULT_LEAVE_HOURS = 8.0
BREAK_THRESHOLD_HOURS = 4.0
UNPAID_BREAK_HOURS = 0.5
OVERTIME_DAYS = ("Thu", "Fri")
OVERTIME_START = datetime.time(18, 0)

_ANCHOR_DAY = datetime.date(2024, 1, 1)


@dataclass(frozen=True)
class HoursBreakdown:
    total: float = 0.0
    regular: float = 0.0
    overtime: float = 0.0
    public_holiday: float = 0.0
    annual_leave: float = 0.0
    sick_leave: float = 0.0
    public_holiday_leave: float = 0.0

    def __add__(self, other: "HoursBreakdown") -> "HoursBreakdown":
        if not isinstance(other, HoursBreakdown):
            return NotImplemented
        return HoursBreakdown(
            total=self.total + other.total,
            regular=self.regular + other.regular,
            overtime=self.overtime + other.overtime,
            public_holiday=self.public_holiday + other.public_holiday,
            annual_leave=self.annual_leave + other.annual_leave,
            sick_leave=self.sick_leave + other.sick_leave,
            public_holiday_leave=self.public_holiday_leave + other.public_holiday_leave,
        )

    @property
    def leave_total(self) -> float:
        return self.annual_leave + self.sick_leave + self.public_holiday_leave

    def to_dict(self) -> Dict[str, float]:
        """Return the buckets with the camelCase keys used in stored roster data."""
        return {
            "total": self.total,
            "regular": self.regular,
            "overtime": self.overtime,
            "publicHoliday": self.public_holiday,
            "annualLeave": self.annual_leave,
            "sickLeave": self.sick_leave,
            "publicHolidayLeave": self.public_holiday_leave,
        }

    def rounded(self, digits: int = 2) -> "HoursBreakdown":
        return HoursBreakdown(**{key: round(value, digits) for key, value in asdict(self).items()})


ZERO_HOURS = HoursBreakdown()


def normalize_leave_type(leave_type: Optional[str]) -> str:
    label = (leave_type or "").strip().lower()
    if label in ("", "none"):
        return ""
    return label


def _leave_buckets(leave_type: str, hours: float) -> Dict[str, float]:
    return {
        "annual_leave": hours if leave_type == "annual" else 0.0,
        "sick_leave": hours if leave_type == "sick" else 0.0,
        "public_holiday_leave": hours if leave_type == "public" else 0.0,
    }


def parse_clock(value: str) -> datetime.datetime:
    """Place an ``HH:MM`` (or ``HH:MM:SS``) string on the anchor day."""
    text = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            clock = datetime.datetime.strptime(text, fmt).time()
        except ValueError:
            continue
        return datetime.datetime.combine(_ANCHOR_DAY, clock)
    raise ValueError(f"Invalid time of day: {value!r}")


def _hours_between(start: datetime.datetime, end: datetime.datetime) -> float:
    return (end - start).total_seconds() / 3600


def compute_hours(
    scheduled_start: Optional[str],
    scheduled_end: Optional[str],
    actual_start: Optional[str],
    actual_end: Optional[str],
    day_label: str,
    leave_type: Optional[str] = None,
    leave_hours: float = 0,
    is_public_holiday: bool = False,
) -> HoursBreakdown:
    leave_type = normalize_leave_type(leave_type)
    leave_hours = float(leave_hours or 0)

    if leave_type and not actual_start and not actual_end:
        return HoursBreakdown(**_leave_buckets(leave_type, leave_hours or DEFAULT_LEAVE_HOURS))

    start_text = actual_start or scheduled_start
    end_text = actual_end or scheduled_end
    if not start_text or not end_text:
        return ZERO_HOURS

    start = parse_clock(start_text)
    end = parse_clock(end_text)
    duration = _hours_between(start, end)
    if duration <= 0:
        return ZERO_HOURS

    working = duration - UNPAID_BREAK_HOURS if duration > BREAK_THRESHOLD_HOURS else duration

    leave = _leave_buckets(leave_type, leave_hours if leave_type and leave_hours > 0 else 0.0)

    if is_public_holiday and working > 0:
        return HoursBreakdown(total=working, public_holiday=working, **leave)

    regular = working
    overtime = 0.0
    # Overtime is measured on the raw clock span while regular hours come from
    # the break-deducted figure.
    overtime_start = datetime.datetime.combine(_ANCHOR_DAY, OVERTIME_START)
    if any(day in (day_label or "") for day in OVERTIME_DAYS) and end > overtime_start:
        effective_start = max(start, overtime_start)
        if effective_start < end:
            overtime = _hours_between(effective_start, end)
            regular = working - overtime

    return HoursBreakdown(
        total=working,
        regular=max(0.0, regular),
        overtime=max(0.0, overtime),
        **leave,
    )


def shift_hours(shift: Mapping[str, Any], day_label: str, is_public_holiday: bool = False) -> HoursBreakdown:
    """Run :func:`compute_hours` over a stored shift record."""
    return compute_hours(
        shift.get("scheduledStart"),
        shift.get("scheduledEnd"),
        shift.get("actualStart"),
        shift.get("actualEnd"),
        day_label,
        shift.get("leaveType"),
        shift.get("leaveHours") or 0,
        is_public_holiday,
    )


def summarize_week(
    grid: Mapping[str, Mapping[str, Iterable[Mapping[str, Any]]]],
    days: Iterable[str],
    public_holiday_days: Iterable[str] = (),
) -> Dict[str, HoursBreakdown]:
    """Sum hour buckets per employee across every location and listed day."""
    holidays = set(public_holiday_days)
    day_list = list(days)
    totals: Dict[str, HoursBreakdown] = {}
    for cells in grid.values():
        for day in day_list:
            for shift in cells.get(day, []) or []:
                employee = shift.get("employee")
                if not employee:
                    continue
                hours = shift_hours(shift, day, day in holidays)
                totals[employee] = totals.get(employee, ZERO_HOURS) + hours
    return totals
