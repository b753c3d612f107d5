"""
Central data model definitions used across the project.

This module defines the canonical structure of timetable entries, sessions
and user preferences so that:
- all modules share the same field names
- the "maybe-empty list of named things" shape of the WebUntis payload is
  resolved once, here, instead of at every place that displays an entry
- persisted JSON keeps the camelCase field names the server and older
  stored files use
"""

from __future__ import annotations

import copy
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class EntryStatus(str, Enum):
    NORMAL = "normal"
    CANCELLED = "cancelled"
    IRREGULAR = "irregular"

    @classmethod
    def from_code(cls, code: Any) -> "EntryStatus":
        # WebUntis omits "code" for regular lessons
        try:
            return cls(str(code).strip().lower())
        except ValueError:
            return cls.NORMAL


def _first_name(items: Any) -> Optional[str]:
    """
    Return the "name" of the first element of a su/ro/te list, or None.
    """
    if not isinstance(items, list) or not items:
        return None
    first = items[0]
    if not isinstance(first, dict):
        return None
    name = first.get("name")
    if name is None:
        return None
    name = str(name).strip()
    return name or None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TimetableEntry:
    """
    Represents one scheduled lesson occurrence as returned by getTimetable.

    `raw` is the untouched server dict; it is what gets cached, so a snapshot
    always contains exactly what the server sent.
    """

    date: int
    start_time: int
    end_time: int
    subject: Optional[str]
    room: Optional[str]
    teacher: Optional[str]
    status: EntryStatus = EntryStatus.NORMAL
    lesson_id: Optional[int] = None
    info: Optional[str] = None
    substitution_text: Optional[str] = None
    lesson_text: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimetableEntry":
        lesson_id = data.get("id")
        return cls(
            date=int(data.get("date", 0)),
            start_time=int(data.get("startTime", 0)),
            end_time=int(data.get("endTime", 0)),
            subject=_first_name(data.get("su")),
            room=_first_name(data.get("ro")),
            teacher=_first_name(data.get("te")),
            status=EntryStatus.from_code(data.get("code")),
            lesson_id=lesson_id if isinstance(lesson_id, int) else None,
            info=_opt_str(data.get("info")),
            substitution_text=_opt_str(data.get("substText")),
            lesson_text=_opt_str(data.get("lstext")),
            raw=copy.deepcopy(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.raw:
            return copy.deepcopy(self.raw)
        out: Dict[str, Any] = {"date": self.date, "startTime": self.start_time, "endTime": self.end_time}
        if self.subject is not None:
            out["su"] = [{"name": self.subject}]
        if self.room is not None:
            out["ro"] = [{"name": self.room}]
        if self.teacher is not None:
            out["te"] = [{"name": self.teacher}]
        if self.status is not EntryStatus.NORMAL:
            out["code"] = self.status.value
        if self.lesson_id is not None:
            out["id"] = self.lesson_id
        return out

    @property
    def is_cancelled(self) -> bool:
        return self.status is EntryStatus.CANCELLED

    @property
    def room_label(self) -> str:
        return self.room or "No Room"

    @property
    def teacher_label(self) -> str:
        return self.teacher or "No Teacher"


@dataclass
class AppSettings:
    dark_mode: bool = False
    notifications_enabled: bool = True
    auto_refresh: bool = True
    refresh_interval_minutes: int = 30
    cache_enabled: bool = True
    show_cancelled_classes: bool = True

    # attribute name -> persisted key
    KEYS = {
        "dark_mode": "darkMode",
        "notifications_enabled": "notificationsEnabled",
        "auto_refresh": "autoRefresh",
        "refresh_interval_minutes": "refreshInterval",
        "cache_enabled": "cacheEnabled",
        "show_cancelled_classes": "showCancelledClasses",
    }

    @classmethod
    def from_dict(cls, data: Any) -> "AppSettings":
        """
        Build settings from a stored dict. Unknown keys are ignored,
        missing or mistyped values fall back to the defaults.
        """
        settings = cls()
        if not isinstance(data, dict):
            return settings
        for attr, key in cls.KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if attr == "refresh_interval_minutes":
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    continue
                if value <= 0:
                    continue
            elif not isinstance(value, bool):
                continue
            setattr(settings, attr, value)
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in self.KEYS.items()}


@dataclass
class Preferences:
    """
    Per-user display preferences.

    An empty `filtered_classes` set means "show everything".
    """

    filtered_classes: Set[str] = field(default_factory=set)
    class_colors: Dict[str, str] = field(default_factory=dict)
    settings: AppSettings = field(default_factory=AppSettings)


@dataclass
class Session:
    """
    Authenticated session as returned by `authenticate`, plus the school it
    belongs to.
    """

    session_id: str
    server_url: str
    school_id: str
    person_id: Optional[int] = None
    person_type: Optional[int] = None
    klasse_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        session_id = data.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("sessionId missing")
        return cls(
            session_id=session_id,
            server_url=str(data.get("serverUrl", "")),
            school_id=str(data.get("schoolId", "")),
            person_id=data.get("personId"),
            person_type=data.get("personType"),
            klasse_id=data.get("klasseId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "serverUrl": self.server_url,
            "schoolId": self.school_id,
            "personId": self.person_id,
            "personType": self.person_type,
            "klasseId": self.klasse_id,
        }


@dataclass
class Credentials:
    server_url: str
    school_id: str
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credentials":
        return cls(
            server_url=str(data["serverUrl"]),
            school_id=str(data["schoolId"]),
            username=str(data["username"]),
            password=str(data["password"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serverUrl": self.server_url,
            "schoolId": self.school_id,
            "username": self.username,
            "password": self.password,
        }


@dataclass
class School:
    """
    One hit of the school directory search.
    """

    id: int
    display_name: str
    city: str
    server: str
    login_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "School":
        return cls(
            id=int(data["id"]),
            display_name=str(data.get("displayName", "")),
            city=str(data.get("city", "") or ""),
            server=str(data.get("server", "")),
            login_name=_opt_str(data.get("loginName")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "displayName": self.display_name,
            "city": self.city,
            "server": self.server,
        }
        if self.login_name:
            out["loginName"] = self.login_name
        return out


@dataclass
class OrganizedDay:
    title: str
    date: dt.date
    entries: List[TimetableEntry] = field(default_factory=list)
    is_today: bool = False
