"""
Configuration.

All values can be overridden through UNTISPLAN_* environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path


class Config:
    """Application settings (environment overrides, sane defaults)."""

    # Local state (session, cache, preferences, reminders)
    DATA_DIR = Path(os.environ.get("UNTISPLAN_HOME") or Path.home() / ".untisplan")

    # Remote service
    CLIENT_NAME = os.environ.get("UNTISPLAN_CLIENT", "untisplan")
    JSONRPC_PATH = "/WebUntis/jsonrpc.do"
    SCHOOL_SEARCH_URL = "https://mobile.webuntis.com/WebUntis/schoolquery2.do"
    REQUEST_TIMEOUT = float(os.environ.get("UNTISPLAN_TIMEOUT", 30))

    # Schedule defaults
    DEFAULT_SPAN_DAYS = 14  # two weeks, starting on Sunday
    SUBJECT_LOOKAHEAD_DAYS = 30
    REMINDER_MINUTES_BEFORE = 15
    RECENT_SCHOOLS_LIMIT = 5
    DEFAULT_CLASS_COLOR = "#e0e0e0"

    # Logging
    LOG_LEVEL = os.environ.get("UNTISPLAN_LOG_LEVEL", "WARNING")
