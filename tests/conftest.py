from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Iterable, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from utils.http import ApiSession
from utils.models import Issue, SearchPage, SearchRequest


class FakeSearchClient:
    """In-memory stand-in for JiraSearchClient.

    Serves ``total`` issues named TEST-<n>. ``rate_limited`` maps a page offset
    to the number of 429 responses to return before succeeding; the count query
    (page_size == 1) uses ``count_rate_limited`` instead.
    """

    def __init__(
        self,
        total: int,
        rate_limited: Optional[Dict[int, int]] = None,
        count_rate_limited: int = 0,
        fail_offsets: Iterable[int] = (),
        delay: float = 0.0,
        page_total: Optional[int] = None,
    ) -> None:
        self.total = total
        self.page_total = total if page_total is None else page_total
        self.rate_limited = dict(rate_limited or {})
        self.count_rate_limited = count_rate_limited
        self.fail_offsets = set(fail_offsets)
        self.delay = delay
        self.calls: List[SearchRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    @property
    def page_calls(self) -> List[SearchRequest]:
        return [call for call in self.calls if call.page_size != 1]

    def search(self, request: SearchRequest) -> SearchPage:
        with self._lock:
            self.calls.append(request)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            is_count = request.page_size == 1
            with self._lock:
                if is_count and self.count_rate_limited:
                    self.count_rate_limited -= 1
                    return SearchPage.rate_limited()
                if not is_count and self.rate_limited.get(request.offset):
                    self.rate_limited[request.offset] -= 1
                    return SearchPage.rate_limited()
            if not is_count and request.offset in self.fail_offsets:
                raise requests.HTTPError(f"500 Server Error for offset {request.offset}")
            end = min(request.offset + request.page_size, self.total)
            items = [Issue(key=f"TEST-{n}", fields={"summary": f"Issue {n}"}) for n in range(request.offset, end)]
            return SearchPage(total_count=self.total if is_count else self.page_total, items=items)
        finally:
            with self._lock:
                self.in_flight -= 1


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def api() -> ApiSession:
    return ApiSession.basic("https://acme.atlassian.net/", "bot@acme.test", "secret-token")


@pytest.fixture
def opsgenie_api() -> ApiSession:
    return ApiSession.genie_key("https://api.opsgenie.com", "genie-key")


@pytest.fixture
def make_response():
    def _make(status: int = 200, payload: Any = None, url: str = "https://acme.atlassian.net/rest") -> requests.Response:
        resp = requests.Response()
        resp.status_code = status
        resp.url = url
        resp.reason = "OK" if status < 400 else "Error"
        resp._content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        return resp

    return _make


@pytest.fixture
def http_session():
    """Patch the shared requests session; configure ``.request`` per test."""
    session = MagicMock()
    with patch("utils.http.get_session", return_value=session):
        yield session


@pytest.fixture
def fake_search():
    """Factory for FakeSearchClient instances."""
    return FakeSearchClient
