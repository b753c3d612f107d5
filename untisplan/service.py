"""
Orchestration: fetch -> cache -> organize -> remind.

This is the layer that decides what happens when the live fetch fails:
FetchFailed is answered from the cached snapshot and the resulting view is
marked offline; if there is no snapshot either, CacheUnavailable is raised.
Authentication problems are never hidden behind the cache, the user has to
log in again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from untisplan.cache import CacheLayer
from untisplan.client import UntisClient
from untisplan.config import Config
from untisplan.dates import start_of_week
from untisplan.errors import CacheUnavailable, FetchFailed
from untisplan.model import AppSettings, OrganizedDay, TimetableEntry
from untisplan.organizer import entries_on, organize, subject_names, visible_entries
from untisplan.reminders import ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass
class ScheduleView:
    days: List[OrganizedDay]
    entries: List[TimetableEntry] = field(default_factory=list)
    offline: bool = False
    last_update: Optional[datetime] = None


class ScheduleService:
    def __init__(
        self,
        client: UntisClient,
        cache: CacheLayer,
        reminders: Optional[ReminderScheduler] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.reminders = reminders
        self.now_fn = now_fn or datetime.now

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch_entries(self, start: date, end: date) -> tuple[List[TimetableEntry], bool]:
        """
        Return (entries, offline). Writes a fresh snapshot on success and falls
        back to the previous one on FetchFailed.
        """
        settings = self.cache.read_settings()
        try:
            entries = self.client.fetch_timetable(start, end)
        except FetchFailed as exc:
            logger.warning("Fetching timetable failed, using cached data: %s", exc)
            cached = self.cache.read_snapshot() if settings.cache_enabled else None
            if cached is None:
                raise CacheUnavailable("Could not fetch the timetable and no cached data is available") from exc
            return cached, True

        if settings.cache_enabled:
            self.cache.write_snapshot(entries)
        self.cache.write_last_update(self.now_fn())
        self._reschedule_reminders(entries)
        return entries, False

    def load_schedule(
        self,
        reference_date: date,
        span_days: int = Config.DEFAULT_SPAN_DAYS,
        include_empty_days: bool = False,
    ) -> ScheduleView:
        start = start_of_week(reference_date)
        end = start + timedelta(days=span_days - 1)
        entries, offline = self.fetch_entries(start, end)

        prefs = self.cache.read_preferences()
        days = organize(
            entries,
            prefs,
            reference_date,
            span_days=span_days,
            include_empty_days=include_empty_days,
            today=self.now_fn().date(),
        )
        return ScheduleView(days=days, entries=entries, offline=offline, last_update=self.cache.read_last_update())

    def today(self) -> tuple[List[TimetableEntry], bool]:
        """
        Today's visible entries (sorted) and whether they came from the cache.
        """
        today = self.now_fn().date()
        start = start_of_week(today)
        entries, offline = self.fetch_entries(start, start + timedelta(days=Config.DEFAULT_SPAN_DAYS))
        prefs = self.cache.read_preferences()
        return entries_on(visible_entries(entries, prefs), today), offline

    def all_subjects(self) -> List[str]:
        """
        Subject names over the next few weeks (for filter/color settings).

        Read-only: the cached week snapshot and the reminders are left alone,
        the snapshot is only used as a fallback when the fetch fails.
        """
        today = self.now_fn().date()
        try:
            entries = self.client.fetch_timetable(today, today + timedelta(days=Config.SUBJECT_LOOKAHEAD_DAYS))
        except FetchFailed as exc:
            logger.warning("Fetching subjects failed, using cached data: %s", exc)
            cached = self.cache.read_snapshot()
            if cached is None:
                raise CacheUnavailable("Could not fetch the timetable and no cached data is available") from exc
            entries = cached
        return subject_names(entries)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def toggle_filter(self, subject: str) -> bool:
        """
        Hide/show a subject. Returns True if the subject is now hidden.
        """
        prefs = self.cache.read_preferences()
        filters = set(prefs.filtered_classes)
        if subject in filters:
            filters.remove(subject)
            hidden = False
        else:
            filters.add(subject)
            hidden = True
        self.cache.write_filters(filters)
        return hidden

    def set_color(self, subject: str, color: str) -> None:
        colors = dict(self.cache.read_preferences().class_colors)
        colors[subject] = color
        self.cache.write_colors(colors)

    def update_settings(self, **changes: object) -> AppSettings:
        settings = self.cache.read_settings()
        for name, value in changes.items():
            if name not in AppSettings.KEYS:
                raise ValueError(f"Unknown setting: {name}")
            setattr(settings, name, value)
        self.cache.write_settings(settings)
        if not settings.notifications_enabled and self.reminders is not None:
            self.reminders.cancel_all()
        return settings

    def set_notifications(self, enabled: bool) -> None:
        self.cache.write_notifications_enabled(enabled)
        if not enabled and self.reminders is not None:
            self.reminders.cancel_all()

    def clear_cache(self) -> None:
        self.cache.clear_snapshot()

    def logout(self) -> None:
        self.client.logout()
        if self.reminders is not None:
            self.reminders.cancel_all()

    def reminders_enabled(self) -> bool:
        settings = self.cache.read_settings()
        return settings.notifications_enabled and self.cache.notifications_enabled()

    def reschedule_from_cache(self, minutes_before: int = Config.REMINDER_MINUTES_BEFORE) -> Optional[int]:
        """
        Recompute reminders from the cached snapshot. Returns the number
        scheduled, or None if reminders are disabled (all are cancelled then).
        Raises CacheUnavailable if there is no snapshot.
        """
        if self.reminders is None:
            return None
        if not self.reminders_enabled():
            self.reminders.cancel_all()
            return None
        entries = self.cache.read_snapshot()
        if entries is None:
            raise CacheUnavailable("No cached timetable")
        prefs = self.cache.read_preferences()
        return self.reminders.schedule_all(visible_entries(entries, prefs), minutes_before=minutes_before)

    # ------------------------------------------------------------------

    def _reschedule_reminders(self, entries: List[TimetableEntry]) -> None:
        if self.reminders is None or not self.reminders_enabled():
            return
        prefs = self.cache.read_preferences()
        self.reminders.schedule_all(visible_entries(entries, prefs))
