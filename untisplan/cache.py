"""
Cache layer: last-known-good timetable snapshot and user preferences.

Every value is replaced as a whole:
- the snapshot is exactly the entry list of the last successful fetch,
  never merged with partial results
- filters, colors and app settings are separate keys and can be replaced
  independently of each other

The cache never decides on its own to serve stale data. The service layer
calls read_snapshot() only after a fetch has explicitly failed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from untisplan.config import Config
from untisplan.model import AppSettings, Preferences, School, TimetableEntry
from untisplan.storage import JsonFileStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "cachedSchedule"
FILTERS_KEY = "filteredClasses"
COLORS_KEY = "classColors"
SETTINGS_KEY = "appSettings"
NOTIFICATIONS_KEY = "notificationPreferences"
RECENT_SCHOOLS_KEY = "recentSchools"
LAST_UPDATE_KEY = "lastUpdate"


class CacheLayer:
    def __init__(self, store: JsonFileStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Timetable snapshot
    # ------------------------------------------------------------------

    def write_snapshot(self, entries: Iterable[TimetableEntry]) -> None:
        self.store.set(SNAPSHOT_KEY, [e.to_dict() for e in entries])

    def read_snapshot(self) -> Optional[List[TimetableEntry]]:
        """
        Return the cached entries, or None if there is no usable snapshot.
        """
        data = self.store.get(SNAPSHOT_KEY)
        if not isinstance(data, list):
            return None
        entries: List[TimetableEntry] = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            try:
                entries.append(TimetableEntry.from_dict(raw))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed cached entry: %r", raw)
        return entries

    def clear_snapshot(self) -> None:
        self.store.remove(SNAPSHOT_KEY)

    def write_last_update(self, when: datetime) -> None:
        self.store.set(LAST_UPDATE_KEY, when.isoformat(timespec="seconds"))

    def read_last_update(self) -> Optional[datetime]:
        value = self.store.get(LAST_UPDATE_KEY)
        if not isinstance(value, str):
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def write_filters(self, filtered_classes: Iterable[str]) -> None:
        norm = sorted({str(x).strip() for x in filtered_classes if str(x).strip()})
        self.store.set(FILTERS_KEY, norm)

    def write_colors(self, class_colors: Dict[str, str]) -> None:
        self.store.set(COLORS_KEY, {str(k): str(v) for k, v in class_colors.items()})

    def write_settings(self, settings: AppSettings) -> None:
        self.store.set(SETTINGS_KEY, settings.to_dict())

    def read_settings(self) -> AppSettings:
        return AppSettings.from_dict(self.store.get(SETTINGS_KEY))

    def write_preferences(self, prefs: Preferences) -> None:
        self.write_filters(prefs.filtered_classes)
        self.write_colors(prefs.class_colors)
        self.write_settings(prefs.settings)

    def read_preferences(self) -> Preferences:
        filters_raw = self.store.get(FILTERS_KEY, [])
        colors_raw = self.store.get(COLORS_KEY, {})

        filters: set[str] = set()
        if isinstance(filters_raw, list):
            filters = {x.strip() for x in filters_raw if isinstance(x, str) and x.strip()}

        colors: Dict[str, str] = {}
        if isinstance(colors_raw, dict):
            colors = {str(k): v for k, v in colors_raw.items() if isinstance(v, str)}

        return Preferences(filtered_classes=filters, class_colors=colors, settings=self.read_settings())

    def notifications_enabled(self) -> bool:
        data = self.store.get(NOTIFICATIONS_KEY)
        if isinstance(data, dict) and isinstance(data.get("enabled"), bool):
            return data["enabled"]
        return True

    def write_notifications_enabled(self, enabled: bool) -> None:
        self.store.set(NOTIFICATIONS_KEY, {"enabled": bool(enabled)})

    # ------------------------------------------------------------------
    # Recently used schools
    # ------------------------------------------------------------------

    def recent_schools(self) -> List[School]:
        data = self.store.get(RECENT_SCHOOLS_KEY, [])
        out: List[School] = []
        for raw in data if isinstance(data, list) else []:
            try:
                out.append(School.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError):
                continue
        return out

    def remember_school(self, school: School) -> List[School]:
        """
        Put `school` in front of the recent list (deduplicated by id, max 5 entries).
        """
        recent = [school] + [s for s in self.recent_schools() if s.id != school.id]
        recent = recent[: Config.RECENT_SCHOOLS_LIMIT]
        payload: List[Dict[str, Any]] = [s.to_dict() for s in recent]
        self.store.set(RECENT_SCHOOLS_KEY, payload)
        return recent
