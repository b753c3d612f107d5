"""
Error taxonomy shared by the client, the cache fallback and the CLI.

- NotAuthenticated / AuthExpired are shown to the user as "please log in"
- FetchFailed is caught by the service layer and answered from the cache
- CacheUnavailable means the fetch failed and there is nothing to fall back to
"""

from __future__ import annotations

from typing import Optional


class UntisError(Exception):
    """Base class for all errors raised by untisplan."""


class NotAuthenticated(UntisError):
    """No usable session and no stored credentials."""


class AuthExpired(UntisError):
    """The server rejected the session again after one re-login attempt."""


class FetchFailed(UntisError):
    """Transport or server failure. The underlying exception is kept in `cause`."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class CacheUnavailable(UntisError):
    """No cached timetable snapshot exists."""
