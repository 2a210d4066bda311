from __future__ import annotations

from typing import Any, Callable, Optional

import httpx
import pytest

from cloudplane.config import RuntimeSettings
from cloudplane.core.session import Session
from cloudplane.runtime.transport import Transport

BASE_URL = "https://api.example.test"
TOKEN = "test-token"


class FakeListing:
    """Serves ``pages`` under ``path`` and records every page request."""

    def __init__(self, path: str, key: str, pages: list[list[Any]]) -> None:
        self.path = path
        self.key = key
        self.pages = pages
        self.requests: list[httpx.Request] = []

    def matches(self, request: httpx.Request) -> bool:
        return request.method == "GET" and request.url.path == self.path

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        number = int(request.url.params.get("page", "1"))
        body: dict[str, Any] = {self.key: self.pages[number - 1], "links": {}}
        if number < len(self.pages):
            body["links"] = {"pages": {"next": f"{BASE_URL}{self.path}?page={number + 1}&per_page=200"}}
        return httpx.Response(200, json=body)


@pytest.fixture()
def make_transport():
    sessions: list[Session] = []

    def _factory(handler: Callable[[httpx.Request], httpx.Response], settings: Optional[RuntimeSettings] = None) -> Transport:
        session = Session(
            settings=settings or RuntimeSettings(base_url=BASE_URL),
            access_token=TOKEN,
            http_transport=httpx.MockTransport(handler),
        )
        sessions.append(session)
        return Transport(session)

    yield _factory
    for session in sessions:
        session.close()


@pytest.fixture()
def make_listing():
    def _factory(pages: list[list[Any]], *, path: str = "/v2/droplets", key: str = "droplets") -> FakeListing:
        return FakeListing(path, key, pages)

    return _factory


class FakeClock:
    """Monotonic clock advanced only by :meth:`sleep`."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
