"""
Class reminders.

schedule_all() always starts by cancelling everything, then schedules one
reminder per upcoming lesson. If the process dies in between, the result is
"no reminders", never duplicates.

Reminders are identified by f"{date}{startTime}{subject}"; scheduling the
same id twice replaces the first one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from untisplan.config import Config
from untisplan.dates import entry_datetime
from untisplan.model import TimetableEntry
from untisplan.storage import JsonFileStore

logger = logging.getLogger(__name__)

REMINDERS_KEY = "scheduledReminders"


class Notifier(Protocol):
    def schedule(self, trigger_time: datetime, payload: Dict[str, Any], dedupe_id: str) -> None: ...

    def cancel_all(self) -> None: ...


class StoredNotifier:
    """
    Notifier that keeps pending reminders in the key-value store, keyed by
    their dedupe id.
    """

    def __init__(self, store: JsonFileStore) -> None:
        self.store = store

    def _load(self) -> Dict[str, Dict[str, Any]]:
        data = self.store.get(REMINDERS_KEY, {})
        return data if isinstance(data, dict) else {}

    def schedule(self, trigger_time: datetime, payload: Dict[str, Any], dedupe_id: str) -> None:
        reminders = self._load()
        reminders[dedupe_id] = {"trigger": trigger_time.isoformat(timespec="minutes"), "payload": payload}
        self.store.set(REMINDERS_KEY, reminders)

    def cancel_all(self) -> None:
        self.store.remove(REMINDERS_KEY)

    def pending(self) -> List[Tuple[datetime, Dict[str, Any]]]:
        """
        All stored reminders, ordered by trigger time.
        """
        out: List[Tuple[datetime, Dict[str, Any]]] = []
        for item in self._load().values():
            try:
                trigger = datetime.fromisoformat(item["trigger"])
            except (KeyError, TypeError, ValueError):
                continue
            payload = item.get("payload")
            out.append((trigger, payload if isinstance(payload, dict) else {}))
        out.sort(key=lambda pair: pair[0])
        return out

    def due(self, now: datetime) -> List[Dict[str, Any]]:
        return [payload for trigger, payload in self.pending() if trigger <= now]


def reminder_id(entry: TimetableEntry) -> str:
    return f"{entry.date}{entry.start_time}{entry.subject}"


class ReminderScheduler:
    def __init__(self, notifier: Notifier, now_fn: Optional[Callable[[], datetime]] = None) -> None:
        self.notifier = notifier
        self.now_fn = now_fn or datetime.now

    def cancel_all(self) -> None:
        self.notifier.cancel_all()

    def schedule_all(
        self,
        entries: Iterable[TimetableEntry],
        minutes_before: int = Config.REMINDER_MINUTES_BEFORE,
    ) -> int:
        """
        Replace all reminders with one per upcoming entry. Returns how many
        distinct reminders were scheduled.
        """
        self.cancel_all()

        now = self.now_fn()
        scheduled: set[str] = set()
        for entry in entries:
            if entry.subject is None:
                continue
            try:
                starts_at = entry_datetime(entry.date, entry.start_time)
            except ValueError:
                logger.warning("Cannot compute start of %r, no reminder", entry)
                continue

            trigger = starts_at - timedelta(minutes=minutes_before)
            # past triggers are skipped silently
            if trigger <= now:
                continue

            dedupe_id = reminder_id(entry)
            payload = {
                "title": f"Class reminder: {entry.subject}",
                "body": f"Your class starts in {minutes_before} minutes",
                "entry": entry.to_dict(),
            }
            self.notifier.schedule(trigger, payload, dedupe_id)
            scheduled.add(dedupe_id)

        logger.debug("Scheduled %d reminders", len(scheduled))
        return len(scheduled)
