"""
CLI (Command Line Interface).

Terminal front end for the timetable client, e.g.:

    untisplan schools <text>
    untisplan login <school_id> <server> <username>
    untisplan week [--date 2024-06-10] [--days 14]
    untisplan today
    untisplan classes
    untisplan filter <subject>
    untisplan color <subject> <color>
    untisplan settings [name=value ...]
    untisplan reminders
    untisplan clear-cache
    untisplan logout

Note:
- All state lives in the data directory (see Config.DATA_DIR)
- Commands return an exit code via SystemExit
"""

from __future__ import annotations

import argparse
import getpass
import logging
from datetime import date, datetime
from typing import Optional

from rich import box
from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.style import Style
from rich.table import Table
from rich.text import Text

from untisplan.cache import CacheLayer
from untisplan.client import UntisClient, search_schools
from untisplan.config import Config
from untisplan.errors import AuthExpired, CacheUnavailable, FetchFailed, NotAuthenticated
from untisplan.model import AppSettings, School
from untisplan.organizer import class_color, format_entry
from untisplan.reminders import ReminderScheduler, StoredNotifier
from untisplan.service import ScheduleService
from untisplan.session import SessionStore
from untisplan.storage import JsonFileStore

console = Console()


class App:
    """
    Wires store, cache, client and service together for one CLI run.
    """

    def __init__(self, store: Optional[JsonFileStore] = None) -> None:
        self.store = store if store is not None else JsonFileStore()
        self.sessions = SessionStore(self.store)
        self.cache = CacheLayer(self.store)
        self.notifier = StoredNotifier(self.store)
        self.reminders = ReminderScheduler(self.notifier)

    def client(self) -> UntisClient:
        return UntisClient.from_store(self.sessions)

    def service(self) -> ScheduleService:
        return ScheduleService(self.client(), self.cache, self.reminders)


def _parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {text!r}")


def _cmd_schools(args: argparse.Namespace, app: App) -> int:
    """
    Search the school directory; without text, show recently used schools.
    """
    query = (args.text or "").strip()
    if not query:
        recent = app.cache.recent_schools()
        if not recent:
            print("No recent schools. Please provide a search text.")
            return 1
        schools = recent
    else:
        if len(query) < 3:
            print("Please type at least 3 characters.")
            return 1
        schools = search_schools(query)

    if not schools:
        print("No results.")
        return 0
    for s in schools:
        print(f"{s.id} | {s.display_name} ({s.city}) | {s.server}")
    return 0


def _cmd_login(args: argparse.Namespace, app: App) -> int:
    school_id = (args.school or "").strip()
    server = (args.server or "").strip()
    username = (args.username or "").strip()
    if not (school_id and server and username):
        print("Please provide school, server and username.")
        return 1

    password = args.password if args.password is not None else getpass.getpass("Password: ")
    client = UntisClient(server, school_id, app.sessions)
    session = client.login(username, password)

    # recent schools are keyed by the numeric directory id
    if school_id.isdigit():
        known = [s for s in app.cache.recent_schools() if s.id == int(school_id)]
        school = known[0] if known else School(id=int(school_id), display_name=school_id, city="", server=server)
        app.cache.remember_school(school)

    print(f"Logged in (person {session.person_id or session.klasse_id}).")
    return 0


def _cmd_logout(args: argparse.Namespace, app: App) -> int:
    try:
        app.service().logout()
    except NotAuthenticated:
        print("Not logged in.")
        return 0
    print("Logged out.")
    return 0


def _print_offline(last_update: Optional[datetime]) -> None:
    when = last_update.strftime("%Y-%m-%d %H:%M") if last_update else "unknown"
    console.print(f"[yellow]Offline mode: could not connect to server, showing cached data (last update: {when}).[/]")


def _color_style(color: str) -> Style:
    # class colors are free text, fall back to the default for unknown ones
    try:
        return Style.parse(color)
    except StyleSyntaxError:
        return Style.parse(Config.DEFAULT_CLASS_COLOR)


def _cmd_week(args: argparse.Namespace, app: App) -> int:
    try:
        ref = date.fromisoformat(args.date) if args.date else date.today()
    except ValueError:
        print(f"Invalid date: {args.date} (use YYYY-MM-DD)")
        return 1
    view = app.service().load_schedule(ref, span_days=args.days, include_empty_days=args.all_days)
    prefs = app.cache.read_preferences()

    if view.offline:
        _print_offline(view.last_update)

    for day in view.days:
        table = Table(title=day.title, box=box.SIMPLE, show_header=False, title_justify="left")
        table.add_column("Lesson")
        table.add_column("Where")
        if not day.entries:
            table.add_row("[dim]No classes scheduled for this day[/]", "")
        for entry in day.entries:
            lesson = Text("▌ ", style=_color_style(class_color(prefs, entry.subject)))
            lesson.append(format_entry(entry), style="strike dim" if entry.is_cancelled else "")
            table.add_row(lesson, Text(f"{entry.room_label} • {entry.teacher_label}"))
        console.print(table)
    return 0


def _cmd_today(args: argparse.Namespace, app: App) -> int:
    entries, offline = app.service().today()
    if offline:
        _print_offline(app.cache.read_last_update())
    if not entries:
        print("No classes today.")
        return 0
    for entry in entries:
        print(f"{format_entry(entry)} | {entry.room_label} | {entry.teacher_label}")
    return 0


def _cmd_classes(args: argparse.Namespace, app: App) -> int:
    subjects = app.service().all_subjects()
    prefs = app.cache.read_preferences()
    if not subjects:
        print("No classes found.")
        return 0
    for name in subjects:
        hidden = " (hidden)" if name in prefs.filtered_classes else ""
        print(f"{name} | {class_color(prefs, name)}{hidden}")
    return 0


def _cmd_filter(args: argparse.Namespace, app: App) -> int:
    subject = (args.subject or "").strip()
    if not subject:
        print("Please provide a subject name.")
        return 1
    hidden = _offline_service(app).toggle_filter(subject)
    print(f"{'Hidden' if hidden else 'Showing'}: {subject}")
    return 0


def _cmd_color(args: argparse.Namespace, app: App) -> int:
    subject = (args.subject or "").strip()
    color = (args.color or "").strip()
    if not subject or not color:
        print("Please provide subject and color.")
        return 1
    _offline_service(app).set_color(subject, color)
    print(f"Color of {subject}: {color}")
    return 0


def _cmd_settings(args: argparse.Namespace, app: App) -> int:
    service = _offline_service(app)
    changes: dict[str, object] = {}
    for item in args.changes or []:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or name not in AppSettings.KEYS:
            print(f"Unknown setting: {item}")
            return 1
        try:
            changes[name] = int(value) if name == "refresh_interval_minutes" else _parse_bool(value)
        except ValueError:
            print(f"Invalid value for {name}: {value}")
            return 1

    settings = service.update_settings(**changes) if changes else app.cache.read_settings()
    for name in AppSettings.KEYS:
        print(f"{name} = {getattr(settings, name)}")
    return 0


def _cmd_reminders(args: argparse.Namespace, app: App) -> int:
    """
    Recompute reminders from the cached timetable and list the pending ones.
    """
    service = _offline_service(app)
    if args.off or args.on:
        service.set_notifications(bool(args.on))
    if args.reschedule:
        try:
            n = service.reschedule_from_cache(minutes_before=args.minutes)
        except CacheUnavailable:
            print("No cached timetable. Run 'untisplan week' first.")
            return 1
        if n is None:
            print("Reminders are disabled. Enable them with 'untisplan reminders --on'.")
        else:
            print(f"Scheduled {n} reminders.")

    pending = app.notifier.pending()
    if not pending:
        print("No pending reminders.")
        return 0
    for trigger, payload in pending:
        print(f"{trigger:%Y-%m-%d %H:%M} | {payload.get('title', '')}")
    return 0


def _cmd_clear_cache(args: argparse.Namespace, app: App) -> int:
    app.cache.clear_snapshot()
    print("Cache cleared.")
    return 0


def _offline_service(app: App) -> ScheduleService:
    """
    Service for preference commands, which must work without a login.
    """
    try:
        client = app.client()
    except NotAuthenticated:
        client = UntisClient("", "", app.sessions)
    return ScheduleService(client, app.cache, app.reminders)


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="untisplan", description="WebUntis timetable CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_schools = sub.add_parser("schools", help="Search schools (no text: recent schools)")
    p_schools.add_argument("text", type=str, nargs="?", default="", help="Search text")

    p_login = sub.add_parser("login", help="Log in to a school")
    p_login.add_argument("school", type=str, help="School id or login name")
    p_login.add_argument("server", type=str, help="Server (e.g. mese.webuntis.com)")
    p_login.add_argument("username", type=str, help="User name")
    p_login.add_argument("--password", type=str, default=None, help="Password (prompted if omitted)")

    sub.add_parser("logout", help="Log out and forget credentials")

    p_week = sub.add_parser("week", help="Show the timetable by day")
    p_week.add_argument("--date", type=str, default=None, help="Any day of the first week (YYYY-MM-DD)")
    p_week.add_argument("--days", type=int, default=Config.DEFAULT_SPAN_DAYS, help="Number of days")
    p_week.add_argument("--all-days", action="store_true", help="Also show empty days after the first week")

    sub.add_parser("today", help="Show today's classes")
    sub.add_parser("classes", help="List all classes with color and filter state")

    p_filter = sub.add_parser("filter", help="Hide/show a class")
    p_filter.add_argument("subject", type=str, help="Subject name")

    p_color = sub.add_parser("color", help="Set the color of a class")
    p_color.add_argument("subject", type=str, help="Subject name")
    p_color.add_argument("color", type=str, help="Color (e.g. #4A90D9 or red)")

    p_settings = sub.add_parser("settings", help="Show or change app settings")
    p_settings.add_argument("changes", nargs="*", help="name=value pairs")

    p_rem = sub.add_parser("reminders", help="Show (and optionally recompute) class reminders")
    p_rem.add_argument("--reschedule", action="store_true", help="Recompute from the cached timetable")
    p_rem.add_argument("--minutes", type=int, default=Config.REMINDER_MINUTES_BEFORE, help="Minutes before class")
    toggle = p_rem.add_mutually_exclusive_group()
    toggle.add_argument("--on", action="store_true", help="Enable reminders")
    toggle.add_argument("--off", action="store_true", help="Disable and cancel reminders")

    sub.add_parser("clear-cache", help="Delete the cached timetable")

    return parser


COMMANDS = {
    "schools": _cmd_schools,
    "login": _cmd_login,
    "logout": _cmd_logout,
    "week": _cmd_week,
    "today": _cmd_today,
    "classes": _cmd_classes,
    "filter": _cmd_filter,
    "color": _cmd_color,
    "settings": _cmd_settings,
    "reminders": _cmd_reminders,
    "clear-cache": _cmd_clear_cache,
}


def main(argv: list[str] | None = None, app: Optional[App] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else Config.LOG_LEVEL,
        format="%(levelname)s %(name)s: %(message)s",
    )

    app = app if app is not None else App()
    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        code = handler(args, app)
    except (NotAuthenticated, AuthExpired) as exc:
        print(f"{exc}. Please log in again: untisplan login <school> <server> <username>")
        code = 1
    except CacheUnavailable:
        print("Failed to fetch schedule and no cached data available.")
        code = 1
    except FetchFailed as exc:
        print(f"Request failed: {exc}")
        code = 1
    raise SystemExit(code)
