from __future__ import annotations

import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo


MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def normalize_week_start(date_value: datetime.date) -> datetime.date:
    """Return the Monday for the provided date."""
    if isinstance(date_value, datetime.datetime):
        date_value = date_value.date()
    weekday = date_value.weekday()
    if weekday == 0:
        return date_value
    return date_value - datetime.timedelta(days=weekday)


def current_week_start(timezone: Optional[str] = None) -> datetime.date:
    today = datetime.datetime.now(ZoneInfo(timezone)).date() if timezone else datetime.date.today()
    return normalize_week_start(today)


def week_dates(week_start: datetime.date) -> List[datetime.date]:
    return [week_start + datetime.timedelta(days=offset) for offset in range(7)]


def day_label(day: datetime.date) -> str:
    return f"{DAY_NAMES[day.weekday()]} {day.day}-{MONTH_NAMES[day.month - 1]}"


def week_day_labels(week_start: datetime.date) -> List[str]:
    """Return labels such as ``Mon 4-Aug`` for each day of the week."""
    return [day_label(day) for day in week_dates(week_start)]


def week_key(week_start: datetime.date) -> str:
    """Return the key used to store a week's roster, e.g. ``Aug-4-2025``."""
    return f"{MONTH_NAMES[week_start.month - 1]}-{week_start.day}-{week_start.year}"


def week_range_label(week_start: datetime.date) -> str:
    end = week_start + datetime.timedelta(days=6)
    return (
        f"{week_start.day}-{MONTH_NAMES[week_start.month - 1]} to "
        f"{end.day}-{MONTH_NAMES[end.month - 1]}"
    )


def week_display_label(week_start: datetime.date) -> str:
    end = week_start + datetime.timedelta(days=6)
    return (
        f"{MONTH_NAMES[week_start.month - 1]} {week_start.day} - "
        f"{MONTH_NAMES[end.month - 1]} {end.day}, {week_start.year}"
    )


def shift_week(week_start: datetime.date, direction: str) -> datetime.date:
    """Move a week start one week back (``prev``) or forward (``next``)."""
    label = (direction or "").strip().lower()
    if label == "prev":
        return week_start - datetime.timedelta(days=7)
    if label == "next":
        return week_start + datetime.timedelta(days=7)
    raise ValueError(f"Unsupported week direction '{direction}'.")


def parse_week_key(key: str) -> datetime.date:
    """Inverse of :func:`week_key`; raises ``ValueError`` for anything else."""
    month, _, rest = (key or "").partition("-")
    day, _, year = rest.partition("-")
    if month not in MONTH_NAMES or not day.isdigit() or not year.isdigit():
        raise ValueError(f"Invalid week key: {key!r}")
    return datetime.date(int(year), MONTH_NAMES.index(month) + 1, int(day))
