"""
Schedule organizer: raw entries -> day buckets ready for display.

Pure functions, no I/O. Given the same entries, preferences, reference date
and "today", the output is always the same.

Rules:
- the view starts on the Sunday of the reference week
- entries without a subject cannot be displayed and are dropped
- an empty filter set means "show all"
- entries are matched to a day by their `date` field only
- within a day, entries are sorted by start time (stable)
- the first 7 days are always emitted, later days only when they have entries
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional

from untisplan.config import Config
from untisplan.dates import encode_date, format_day_title, format_time, start_of_week
from untisplan.model import OrganizedDay, Preferences, TimetableEntry

ALWAYS_SHOWN_DAYS = 7


def visible_entries(entries: Iterable[TimetableEntry], prefs: Preferences) -> List[TimetableEntry]:
    """
    Apply the user's filters, keeping the original order.
    """
    filtered = set(prefs.filtered_classes)
    show_cancelled = prefs.settings.show_cancelled_classes

    out: List[TimetableEntry] = []
    for entry in entries:
        if entry.subject is None:
            continue
        if filtered and entry.subject in filtered:
            continue
        if not show_cancelled and entry.is_cancelled:
            continue
        out.append(entry)
    return out


def organize(
    entries: Iterable[TimetableEntry],
    prefs: Preferences,
    reference_date: date,
    span_days: int = Config.DEFAULT_SPAN_DAYS,
    include_empty_days: bool = False,
    today: Optional[date] = None,
) -> List[OrganizedDay]:
    """
    Bucket entries into days, starting at the Sunday of `reference_date`'s week.

    Set `include_empty_days` to also emit empty days after the first week.
    """
    today = today if today is not None else date.today()
    start = start_of_week(reference_date)
    visible = visible_entries(entries, prefs)

    days: List[OrganizedDay] = []
    for offset in range(span_days):
        day = start + timedelta(days=offset)
        code = encode_date(day)

        # sorted() is stable, equal start times keep their input order
        day_entries = sorted((e for e in visible if e.date == code), key=lambda e: e.start_time)

        if day_entries or offset < ALWAYS_SHOWN_DAYS or include_empty_days:
            days.append(
                OrganizedDay(
                    title=format_day_title(day, today),
                    date=day,
                    entries=day_entries,
                    is_today=day == today,
                )
            )
    return days


def entries_on(entries: Iterable[TimetableEntry], day: date) -> List[TimetableEntry]:
    """
    All entries of one calendar day, sorted by start time.
    """
    code = encode_date(day)
    return sorted((e for e in entries if e.date == code), key=lambda e: e.start_time)


def subject_names(entries: Iterable[TimetableEntry]) -> List[str]:
    return sorted({e.subject for e in entries if e.subject})


def format_entry(entry: TimetableEntry) -> str:
    """
    One-line summary: "8:00 - 8:45 Math", cancelled lessons get "(Cancelled)".
    """
    line = f"{format_time(entry.start_time)} - {format_time(entry.end_time)} {entry.subject or ''}".rstrip()
    if entry.is_cancelled:
        line += " (Cancelled)"
    return line


def class_color(prefs: Preferences, subject: Optional[str]) -> str:
    if subject and subject in prefs.class_colors:
        return prefs.class_colors[subject]
    return Config.DEFAULT_CLASS_COLOR
