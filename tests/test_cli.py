"""
Tests for CLI entry points.

These tests focus on:
- argument validation (exit codes)
- preference commands working without a login
- schedule commands against a stub client, using a temporary data
  directory so real user state is never touched
"""

import contextlib
import io
import tempfile
import unittest
from datetime import date, timedelta

from untisplan.cli import App, main
from untisplan.dates import encode_date
from untisplan.errors import AuthExpired, FetchFailed
from untisplan.storage import JsonFileStore

from fakes import StubClient, entry


class StubApp(App):
    def __init__(self, store: JsonFileStore, outcome) -> None:
        super().__init__(store)
        self.stub = StubClient(outcome)

    def client(self):
        return self.stub


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = JsonFileStore(self._tmp.name)

    def run_cli(self, argv, app=None) -> tuple[int, str]:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            with self.assertRaises(SystemExit) as ctx:
                main(argv, app=app if app is not None else App(self.store))
        return ctx.exception.code, out.getvalue()

    def test_schools_without_text_and_history_fails(self) -> None:
        code, out = self.run_cli(["schools"])
        self.assertNotEqual(code, 0)
        self.assertIn("No recent schools", out)

    def test_schools_short_query_fails(self) -> None:
        code, _ = self.run_cli(["schools", "ab"])
        self.assertNotEqual(code, 0)

    def test_filter_toggle_without_login(self) -> None:
        code, out = self.run_cli(["filter", "Math"])
        self.assertEqual(code, 0)
        self.assertIn("Hidden: Math", out)
        self.assertEqual(self.store.get("filteredClasses"), ["Math"])

        code, out = self.run_cli(["filter", "Math"])
        self.assertIn("Showing: Math", out)
        self.assertEqual(self.store.get("filteredClasses"), [])

    def test_color(self) -> None:
        code, _ = self.run_cli(["color", "Math", "#4A90D9"])
        self.assertEqual(code, 0)
        self.assertEqual(self.store.get("classColors"), {"Math": "#4A90D9"})

    def test_settings(self) -> None:
        code, out = self.run_cli(["settings", "show_cancelled_classes=off", "refresh_interval_minutes=15"])
        self.assertEqual(code, 0)
        self.assertIn("show_cancelled_classes = False", out)
        stored = self.store.get("appSettings")
        self.assertFalse(stored["showCancelledClasses"])
        self.assertEqual(stored["refreshInterval"], 15)

    def test_settings_rejects_unknown(self) -> None:
        code, _ = self.run_cli(["settings", "colour=red"])
        self.assertEqual(code, 1)
        code, _ = self.run_cli(["settings", "dark_mode=maybe"])
        self.assertEqual(code, 1)

    def test_week_not_logged_in(self) -> None:
        code, out = self.run_cli(["week"])
        self.assertEqual(code, 1)
        self.assertIn("log in", out)

    def test_week_with_stub_client(self) -> None:
        app = StubApp(self.store, [entry(20240610, 800, 845, "Math")])
        code, _ = self.run_cli(["week", "--date", "2024-06-10"], app=app)
        self.assertEqual(code, 0)
        self.assertEqual(app.stub.fetches, [(date(2024, 6, 9), date(2024, 6, 22))])
        self.assertEqual(self.store.get("cachedSchedule")[0]["su"][0]["name"], "Math")

    def test_week_offline_without_cache(self) -> None:
        app = StubApp(self.store, FetchFailed("offline"))
        code, out = self.run_cli(["week"], app=app)
        self.assertEqual(code, 1)
        self.assertIn("no cached data", out)

    def test_today_auth_expired(self) -> None:
        app = StubApp(self.store, AuthExpired("Session expired"))
        code, out = self.run_cli(["today"], app=app)
        self.assertEqual(code, 1)
        self.assertIn("Please log in again", out)

    def test_today_lists_classes(self) -> None:
        today = encode_date(date.today())
        app = StubApp(self.store, [entry(today, 1000, 1045, "Art"), entry(today, 800, 845, "Math")])
        code, out = self.run_cli(["today"], app=app)
        self.assertEqual(code, 0)
        self.assertEqual(
            out.splitlines(), ["8:00 - 8:45 Math | No Room | No Teacher", "10:00 - 10:45 Art | No Room | No Teacher"]
        )

    def test_reminders_reschedule_from_cache(self) -> None:
        code, out = self.run_cli(["reminders", "--reschedule"])
        self.assertEqual(code, 1)

        tomorrow = encode_date(date.today() + timedelta(days=1))
        self.store.set("cachedSchedule", [{"date": tomorrow, "startTime": 800, "endTime": 845, "su": [{"name": "Math"}]}])
        code, out = self.run_cli(["reminders", "--reschedule"])
        self.assertEqual(code, 0)
        self.assertIn("Scheduled 1 reminders.", out)
        self.assertIn("Class reminder: Math", out)

    def test_reminders_reschedule_respects_filters_and_disabled_notifications(self) -> None:
        tomorrow = encode_date(date.today() + timedelta(days=1))
        self.store.set("cachedSchedule", [{"date": tomorrow, "startTime": 800, "endTime": 845, "su": [{"name": "Math"}]}])
        self.store.set("filteredClasses", ["Math"])
        code, out = self.run_cli(["reminders", "--reschedule"])
        self.assertEqual(code, 0)
        self.assertIn("Scheduled 0 reminders.", out)
        self.assertIn("No pending reminders.", out)

        self.store.set("filteredClasses", [])
        self.store.set("notificationPreferences", {"enabled": False})
        code, out = self.run_cli(["reminders", "--reschedule"])
        self.assertEqual(code, 0)
        self.assertIn("Reminders are disabled", out)
        self.assertIsNone(self.store.get("scheduledReminders"))

    def test_reminders_on_and_off_are_exclusive(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            code, _ = self.run_cli(["reminders", "--on", "--off"])
        self.assertEqual(code, 2)
        self.assertIsNone(self.store.get("notificationPreferences"))

    def test_week_invalid_date(self) -> None:
        app = StubApp(self.store, [])
        code, out = self.run_cli(["week", "--date", "2024-13-40"], app=app)
        self.assertEqual(code, 1)
        self.assertIn("Invalid date", out)
        self.assertEqual(app.stub.fetches, [])

    def test_clear_cache(self) -> None:
        self.store.set("cachedSchedule", [])
        code, _ = self.run_cli(["clear-cache"])
        self.assertEqual(code, 0)
        self.assertIsNone(self.store.get("cachedSchedule"))


if __name__ == "__main__":
    unittest.main()
