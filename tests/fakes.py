"""
Test doubles shared by the test modules: a scripted HTTP session and a
stub timetable client.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

import requests


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def ok(result: Any) -> FakeResponse:
    return FakeResponse(200, {"jsonrpc": "2.0", "id": "1", "result": result})


def rpc_error(code: int, message: str = "error") -> FakeResponse:
    return FakeResponse(200, {"jsonrpc": "2.0", "id": "1", "error": {"code": code, "message": message}})


class FakeHttp:
    """
    Answers JSON-RPC POSTs per method. A handler is either a list of
    responses (consumed in order, the last one repeats) or a callable
    (payload, headers) -> response. Exceptions in a list are raised.
    """

    def __init__(self, handlers: Dict[str, Any]) -> None:
        self.handlers = handlers
        self.calls: List[Dict[str, Any]] = []
        self.gets: List[Dict[str, Any]] = []
        self.get_response: Any = None
        self._lock = threading.Lock()

    def methods(self) -> List[str]:
        return [c["method"] for c in self.calls]

    def count(self, method: str) -> int:
        return self.methods().count(method)

    def post(self, url: str, params: Optional[dict] = None, json: Any = None, headers: Optional[dict] = None,
             timeout: Optional[float] = None) -> FakeResponse:
        method = json["method"]
        with self._lock:
            self.calls.append({"url": url, "params": params, "payload": json, "headers": headers or {},
                               "method": method})
            handler = self.handlers[method]
            if isinstance(handler, list):
                response = handler.pop(0) if len(handler) > 1 else handler[0]
                if isinstance(response, Exception):
                    raise response
                return response
        return handler(json, headers or {})

    def get(self, url: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> FakeResponse:
        self.gets.append({"url": url, "params": params})
        if isinstance(self.get_response, Exception):
            raise self.get_response
        return self.get_response


class StubClient:
    """
    Stands in for UntisClient in service/CLI tests.
    `outcome` is a list of entries to return or an exception to raise.
    """

    def __init__(self, outcome: Any) -> None:
        self.outcome = outcome
        self.fetches: List[tuple] = []
        self.logged_out = False

    def fetch_timetable(self, start: Any, end: Any, element_id: Optional[int] = None) -> Any:
        self.fetches.append((start, end))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return list(self.outcome)

    def logout(self) -> None:
        self.logged_out = True


def raw_entry(date: int, start: int, end: int, subject: Optional[str] = "Math", **extra: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {"date": date, "startTime": start, "endTime": end}
    if subject is not None:
        data["su"] = [{"id": 1, "name": subject}]
    data.update(extra)
    return data


def entry(date: int, start: int, end: int, subject: Optional[str] = "Math", **extra: Any):
    from untisplan.model import TimetableEntry

    return TimetableEntry.from_dict(raw_entry(date, start, end, subject, **extra))


def call_in_threads(fn: Callable[[], Any], n: int) -> List[Any]:
    results: List[Any] = [None] * n

    def run(i: int) -> None:
        try:
            results[i] = fn()
        except Exception as exc:  # collected and asserted by the test
            results[i] = exc

    threads = [threading.Thread(target=run, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results
