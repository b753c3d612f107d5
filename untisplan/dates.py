"""
Date/time codec for the compact numeric formats used by WebUntis.

- dates are integers YYYYMMDD (20240610)
- times are integers HMM or HHMM (800 = 8:00, 1345 = 13:45)

Weeks start on Sunday (Sunday = day 0), like the school timetable views.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def encode_date(d: date) -> int:
    """
    Convert a calendar date to its YYYYMMDD integer.
    """
    return d.year * 10000 + d.month * 100 + d.day


def decode_date(value: int) -> date:
    """
    Convert a YYYYMMDD integer back to a calendar date.
    Raises ValueError if the value is not a real date.
    """
    value = int(value)
    return date(value // 10000, (value // 100) % 100, value % 100)


def _split_time(value: int) -> Tuple[str, str]:
    # 3 digits: H + MM, anything else: first two / next two
    s = str(value)
    if len(s) == 3:
        return s[:1], s[1:3]
    return s[:2], s[2:4]


def format_time(value: int) -> str:
    """
    Format a compact time as "H:MM" / "HH:MM".

    No range check: malformed values give garbled text, never an exception.
    """
    hours, minutes = _split_time(value)
    return f"{hours}:{minutes}"


def time_parts(value: int) -> Tuple[int, int]:
    """
    Return (hour, minute) of a compact time. Raises ValueError on garbage.
    """
    hours, minutes = _split_time(value)
    return int(hours), int(minutes)


def entry_datetime(date_value: int, time_value: int) -> datetime:
    """
    Combine a YYYYMMDD date and a compact time into a naive local datetime.
    """
    hour, minute = time_parts(time_value)
    return datetime.combine(decode_date(date_value), datetime.min.time()).replace(hour=hour, minute=minute)


def day_index(d: date) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return d.isoweekday() % 7


def start_of_week(d: date) -> date:
    """
    Return the Sunday on or before `d`.
    """
    return d - timedelta(days=day_index(d))


def format_day_title(d: date, today: Optional[date] = None) -> str:
    """
    Human title of a day, e.g. "Monday, June 10" or "Monday, June 10 (Today)".
    """
    today = today if today is not None else date.today()
    title = f"{DAY_NAMES[day_index(d)]}, {MONTH_NAMES[d.month - 1]} {d.day}"
    if d == today:
        title += " (Today)"
    return title
