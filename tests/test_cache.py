"""
Unit tests for the cache layer.

Cache contract:
- the snapshot is replaced as a whole and keeps the raw server payload
- filters, colors and settings are independent keys
- recent schools: most recent first, unique by id, at most 5
"""

import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from untisplan.cache import CacheLayer
from untisplan.model import AppSettings, Preferences, School
from untisplan.storage import JsonFileStore

from fakes import entry, raw_entry


class TestCache(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.cache = CacheLayer(JsonFileStore(self.root))

    def test_no_snapshot(self) -> None:
        self.assertIsNone(self.cache.read_snapshot())

    def test_snapshot_keeps_raw_payload(self) -> None:
        raw = raw_entry(20240610, 800, 845, "Math", code="irregular", ro=[{"id": 3, "name": "R101"}], lsnumber=7)
        self.cache.write_snapshot([entry(20240610, 800, 845, "Math", code="irregular",
                                         ro=[{"id": 3, "name": "R101"}], lsnumber=7)])

        stored = json.loads((self.root / "cachedSchedule.json").read_text(encoding="utf-8"))
        self.assertEqual(stored, [raw])

        loaded = self.cache.read_snapshot()
        self.assertEqual(len(loaded), 1)
        self.assertEqual(loaded[0].room, "R101")
        self.assertEqual(loaded[0].status.value, "irregular")

    def test_snapshot_is_replaced_not_merged(self) -> None:
        self.cache.write_snapshot([entry(20240610, 800, 845, "Math"), entry(20240611, 800, 845, "Art")])
        self.cache.write_snapshot([entry(20240612, 900, 945, "Bio")])
        self.assertEqual([e.subject for e in self.cache.read_snapshot()], ["Bio"])

        self.cache.write_snapshot([])
        self.assertEqual(self.cache.read_snapshot(), [])

        self.cache.clear_snapshot()
        self.assertIsNone(self.cache.read_snapshot())

    def test_default_preferences(self) -> None:
        prefs = self.cache.read_preferences()
        self.assertEqual(prefs.filtered_classes, set())
        self.assertEqual(prefs.class_colors, {})
        self.assertEqual(prefs.settings, AppSettings())

    def test_preferences_roundtrip_and_independent_keys(self) -> None:
        self.cache.write_preferences(
            Preferences(
                filtered_classes={"Math"},
                class_colors={"Art": "#00ff00"},
                settings=AppSettings(show_cancelled_classes=False, refresh_interval_minutes=10),
            )
        )
        self.cache.write_colors({"Bio": "blue"})

        prefs = self.cache.read_preferences()
        self.assertEqual(prefs.filtered_classes, {"Math"})
        self.assertEqual(prefs.class_colors, {"Bio": "blue"})
        self.assertFalse(prefs.settings.show_cancelled_classes)
        self.assertEqual(prefs.settings.refresh_interval_minutes, 10)

    def test_false_settings_survive(self) -> None:
        self.cache.write_settings(AppSettings(notifications_enabled=False, cache_enabled=False, auto_refresh=False))
        settings = self.cache.read_settings()
        self.assertFalse(settings.notifications_enabled)
        self.assertFalse(settings.cache_enabled)
        self.assertFalse(settings.auto_refresh)

    def test_garbage_preferences_fall_back(self) -> None:
        (self.root / "filteredClasses.json").write_text('"Math"', encoding="utf-8")
        (self.root / "classColors.json").write_text("[1]", encoding="utf-8")
        (self.root / "appSettings.json").write_text('{"darkMode": "yes", "refreshInterval": -3}', encoding="utf-8")
        prefs = self.cache.read_preferences()
        self.assertEqual(prefs, Preferences())

    def test_notifications_flag(self) -> None:
        self.assertTrue(self.cache.notifications_enabled())
        self.cache.write_notifications_enabled(False)
        self.assertFalse(self.cache.notifications_enabled())

    def test_last_update(self) -> None:
        self.assertIsNone(self.cache.read_last_update())
        self.cache.write_last_update(datetime(2024, 6, 10, 7, 30, 12))
        self.assertEqual(self.cache.read_last_update(), datetime(2024, 6, 10, 7, 30, 12))

    def test_recent_schools_bounded_and_deduplicated(self) -> None:
        for i in range(1, 8):
            self.cache.remember_school(School(i, f"School {i}", "City", "s.webuntis.com"))
        self.cache.remember_school(School(5, "School 5 renamed", "City", "s.webuntis.com"))

        recent = self.cache.recent_schools()
        self.assertEqual([s.id for s in recent], [5, 7, 6, 4, 3])
        self.assertEqual(recent[0].display_name, "School 5 renamed")


if __name__ == "__main__":
    unittest.main()
