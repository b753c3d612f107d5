"""
Session store: the single source of truth for "are we logged in, and as whom".

Two keys are managed here:
- sessionInfo  -> the last session returned by `authenticate`
- credentials  -> what is needed to silently log in again

The store has no notion of expiry. A session is only known to be stale when
the server rejects it, which the client observes.
"""

from __future__ import annotations

import logging
from typing import Optional

from untisplan.model import Credentials, Session
from untisplan.storage import JsonFileStore

logger = logging.getLogger(__name__)

SESSION_KEY = "sessionInfo"
CREDENTIALS_KEY = "credentials"


class SessionStore:
    def __init__(self, store: JsonFileStore) -> None:
        self.store = store

    def load(self) -> Optional[Session]:
        """
        Return the persisted session, or None if absent or malformed.
        """
        data = self.store.get(SESSION_KEY)
        if data is None:
            return None
        try:
            return Session.from_dict(data)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed stored session: %s", exc)
            return None

    def save(self, session: Session) -> None:
        self.store.set(SESSION_KEY, session.to_dict())

    def load_credentials(self) -> Optional[Credentials]:
        data = self.store.get(CREDENTIALS_KEY)
        if data is None:
            return None
        try:
            return Credentials.from_dict(data)
        except (KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring malformed stored credentials: %s", exc)
            return None

    def save_credentials(self, credentials: Credentials) -> None:
        # TODO: move the password into the OS keyring instead of plain JSON
        self.store.set(CREDENTIALS_KEY, credentials.to_dict())

    def clear(self) -> None:
        """
        Forget session and credentials together (logout).
        """
        self.store.remove(SESSION_KEY)
        self.store.remove(CREDENTIALS_KEY)
