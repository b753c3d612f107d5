"""
WebUntis JSON-RPC client.

One UntisClient instance talks to one school on one server. It owns the
in-memory session and recovers it transparently:

1. no session in memory -> persisted session -> silent login with stored
   credentials -> NotAuthenticated
2. server rejects the session -> log in again ONCE, retry the call ONCE;
   a second rejection raises AuthExpired
3. anything else that goes wrong on the wire -> FetchFailed (cause chained)

Callers decide what to do on the final failure (see service.py for the
cache fallback).
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import requests

from untisplan.config import Config
from untisplan.dates import encode_date
from untisplan.errors import AuthExpired, FetchFailed, NotAuthenticated
from untisplan.model import Credentials, School, Session, TimetableEntry
from untisplan.session import SessionStore

logger = logging.getLogger(__name__)

# JSON-RPC error codes meaning "this session / these credentials are not accepted"
ERROR_NOT_AUTHENTICATED = -8520
ERROR_BAD_CREDENTIALS = -8504
AUTH_ERROR_CODES = {ERROR_NOT_AUTHENTICATED, ERROR_BAD_CREDENTIALS}

# element types of getTimetable
ELEMENT_TYPE_CLASS = 1
ELEMENT_TYPE_STUDENT = 5

MAX_AUTH_RETRIES = 1

DateLike = Union[date, int]


class _AuthRejected(Exception):
    """Internal signal: the server refused the session (HTTP 401 or -8520)."""


def jsonrpc_url(server_url: str) -> str:
    """
    Build the JSON-RPC endpoint from a server name as returned by the school
    search ("mese.webuntis.com") or from a full URL.
    """
    server = server_url.strip().rstrip("/")
    if not server.startswith(("http://", "https://")):
        server = "https://" + server
    if not server.endswith(Config.JSONRPC_PATH):
        server += Config.JSONRPC_PATH
    return server


def _date_param(value: DateLike) -> int:
    if isinstance(value, date):
        return encode_date(value)
    return int(value)


def search_schools(
    query: str,
    http: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> List[School]:
    """
    Query the school directory. Raises FetchFailed on any transport/format problem.
    """
    http = http if http is not None else requests.Session()
    params = {"search": query, "client": Config.CLIENT_NAME}
    try:
        resp = http.get(Config.SCHOOL_SEARCH_URL, params=params, timeout=timeout or Config.REQUEST_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise FetchFailed("School search failed", exc) from exc

    schools_raw = data.get("schools", []) if isinstance(data, dict) else []
    schools: List[School] = []
    for raw in schools_raw if isinstance(schools_raw, list) else []:
        try:
            schools.append(School.from_dict(raw))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed school entry: %r", raw)
    return schools


class UntisClient:
    """Service client for one WebUntis school."""

    def __init__(
        self,
        server_url: str,
        school_id: str,
        session_store: SessionStore,
        http: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        client_name: Optional[str] = None,
    ) -> None:
        self.server_url = server_url
        self.school_id = str(school_id)
        self.session_store = session_store
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout if timeout is not None else Config.REQUEST_TIMEOUT
        self.client_name = client_name or Config.CLIENT_NAME
        self._session: Optional[Session] = None
        # serializes (re-)login: concurrent callers wait for one refresh
        self._auth_lock = threading.Lock()
        # stale session whose re-login was already rejected
        self._failed_refresh: Optional[Session] = None
        self._ids = itertools.count(1)

    @classmethod
    def from_store(cls, session_store: SessionStore, **kwargs: Any) -> "UntisClient":
        """
        Build a client for the school the user last logged in to.
        Raises NotAuthenticated if nothing is stored.
        """
        creds = session_store.load_credentials()
        if creds is not None:
            return cls(creds.server_url, creds.school_id, session_store, **kwargs)
        session = session_store.load()
        if session is not None:
            return cls(session.server_url, session.school_id, session_store, **kwargs)
        raise NotAuthenticated("Not logged in")

    @property
    def session(self) -> Optional[Session]:
        return self._session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> Session:
        """
        Authenticate and persist session + credentials.
        Raises NotAuthenticated if the server refuses the credentials.
        """
        creds = Credentials(self.server_url, self.school_id, username, password)
        with self._auth_lock:
            return self._authenticate(creds)

    def fetch_timetable(
        self,
        start: DateLike,
        end: DateLike,
        element_id: Optional[int] = None,
    ) -> List[TimetableEntry]:
        """
        Fetch all timetable entries in [start, end] for the given class
        element, or for the logged-in person if no element is given.
        """
        start_i = _date_param(start)
        end_i = _date_param(end)

        def build(session: Session) -> Dict[str, Any]:
            el_id, el_type = self._element_for(session, element_id)
            return {
                "options": {
                    "startDate": start_i,
                    "endDate": end_i,
                    "element": {"id": el_id, "type": el_type},
                    "showLsText": True,
                    "showStudentgroup": True,
                    "showInfo": True,
                    "showSubstText": True,
                }
            }

        result = self._call_authenticated("getTimetable", build)
        return self._parse_entries(result)

    def get_subjects(self) -> List[Dict[str, Any]]:
        result = self._call_authenticated("getSubjects", lambda session: {})
        if not isinstance(result, list):
            return []
        return [s for s in result if isinstance(s, dict)]

    def logout(self) -> None:
        """
        End the remote session (best effort) and forget session + credentials.
        """
        with self._auth_lock:
            session = self._session or self.session_store.load()
            if session is not None:
                try:
                    self._post("logout", {}, session)
                except (FetchFailed, _AuthRejected) as exc:
                    logger.warning("Remote logout failed, clearing local session anyway: %s", exc)
            self._session = None
            self.session_store.clear()

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def _use_school(self, server_url: str, school_id: str) -> None:
        self.server_url = server_url
        self.school_id = str(school_id)

    def _authenticate(self, creds: Credentials) -> Session:
        # caller holds _auth_lock
        self._use_school(creds.server_url, creds.school_id)
        params = {"user": creds.username, "password": creds.password, "client": self.client_name}
        try:
            result = self._post("authenticate", params)
        except _AuthRejected as exc:
            raise NotAuthenticated("Login rejected by server") from exc

        if not isinstance(result, dict) or not result.get("sessionId"):
            raise NotAuthenticated("Login failed: no session returned")

        session = Session(
            session_id=str(result["sessionId"]),
            server_url=self.server_url,
            school_id=self.school_id,
            person_id=result.get("personId"),
            person_type=result.get("personType"),
            klasse_id=result.get("klasseId"),
        )
        self._session = session
        self._failed_refresh = None
        self.session_store.save(session)
        self.session_store.save_credentials(creds)
        logger.info("Logged in as %s at %s", creds.username, self.school_id)
        return session

    def _ensure_session(self) -> Session:
        with self._auth_lock:
            if self._session is None:
                self._session = self.session_store.load()
            if self._session is not None:
                return self._session
            creds = self.session_store.load_credentials()
            if creds is None:
                raise NotAuthenticated("Not logged in")
            logger.info("No session, logging in with stored credentials")
            return self._authenticate(creds)

    def _relogin(self, stale: Session) -> Session:
        """
        Replace a rejected session. If another caller already replaced it
        while we waited for the lock, reuse theirs; if another caller already
        failed to replace it, fail the same way without asking the server again.
        """
        with self._auth_lock:
            if self._session is not None and self._session is not stale:
                return self._session
            if self._failed_refresh is stale:
                raise AuthExpired("Session expired and re-login was rejected")

            creds = self.session_store.load_credentials()
            if creds is None:
                self._session = None
                self._failed_refresh = stale
                raise AuthExpired("Session expired and no stored credentials")
            try:
                return self._authenticate(creds)
            except NotAuthenticated as exc:
                self._session = None
                self._failed_refresh = stale
                raise AuthExpired("Session expired and re-login was rejected") from exc

    def _call_authenticated(self, method: str, build_params: Callable[[Session], Dict[str, Any]]) -> Any:
        session = self._ensure_session()
        attempt = 0
        while True:
            try:
                return self._post(method, build_params(session), session)
            except _AuthRejected as exc:
                if attempt >= MAX_AUTH_RETRIES:
                    raise AuthExpired(f"{method}: session rejected after re-login") from exc
                attempt += 1
                logger.info("%s: session rejected, logging in again", method)
                session = self._relogin(session)

    @staticmethod
    def _element_for(session: Session, element_id: Optional[int]) -> Tuple[int, int]:
        if element_id is not None:
            return element_id, ELEMENT_TYPE_CLASS
        if session.person_id:
            return session.person_id, session.person_type or ELEMENT_TYPE_STUDENT
        if session.klasse_id:
            return session.klasse_id, ELEMENT_TYPE_CLASS
        raise NotAuthenticated("Session has neither a person nor a class id")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, method: str, params: Dict[str, Any], session: Optional[Session] = None) -> Any:
        payload = {"id": str(next(self._ids)), "method": method, "params": params, "jsonrpc": "2.0"}
        headers = {"Content-Type": "application/json"}
        if session is not None:
            headers["Cookie"] = f"JSESSIONID={session.session_id}"

        try:
            resp = self.http.post(
                jsonrpc_url(self.server_url),
                params={"school": self.school_id},
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise FetchFailed(f"{method}: request failed", exc) from exc

        if resp.status_code == 401:
            raise _AuthRejected(method)
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise FetchFailed(f"{method}: HTTP {resp.status_code}", exc) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchFailed(f"{method}: response is not JSON", exc) from exc
        if not isinstance(data, dict):
            raise FetchFailed(f"{method}: unexpected response {type(data).__name__}")

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            if code in AUTH_ERROR_CODES:
                raise _AuthRejected(f"{method}: {message}")
            raise FetchFailed(f"{method}: server error {code}: {message}")

        return data.get("result")

    @staticmethod
    def _parse_entries(result: Any) -> List[TimetableEntry]:
        if not isinstance(result, list):
            return []
        entries: List[TimetableEntry] = []
        for raw in result:
            if not isinstance(raw, dict):
                continue
            try:
                entries.append(TimetableEntry.from_dict(raw))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed timetable entry: %r", raw)
        return entries
