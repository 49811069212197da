# File: tests/conftest.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from link_scout.config import PipelineConfig
from link_scout.fetcher.models import TransportResponse


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """
    In-memory transport. Outcomes are queued per ``(method, url)``; the last
    queued outcome repeats. Exceptions are raised, responses returned, and
    unknown URLs answer 404.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.payloads: List[Any] = []

    def add(self, method: str, url: str, *outcomes: Any) -> "FakeTransport":
        self.routes.setdefault((method.upper(), url), []).extend(outcomes)
        return self

    def html(self, url: str, body: str, status: int = 200) -> "FakeTransport":
        return self.add(
            "GET",
            url,
            TransportResponse(url, status, {"Content-Type": "text/html; charset=utf-8"}, body.encode()),
        )

    def redirect(self, method: str, url: str, location: str, status: int = 301) -> "FakeTransport":
        return self.add(method, url, TransportResponse(url, status, {"Location": location}, b""))

    def count(self, method: str, url: str) -> int:
        return self.calls.count((method.upper(), url))

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        max_bytes: Optional[int] = None,
    ) -> TransportResponse:
        key = (method.upper(), url)
        self.calls.append(key)
        if json is not None:
            self.payloads.append(json)
        queue = self.routes.get(key)
        if not queue:
            return TransportResponse(url, 404, {}, b"")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def config() -> PipelineConfig:
    """Defaults with zero backoff so retry paths do not sleep."""
    return PipelineConfig(
        retry_initial_delay=0.0,
        analysis_initial_delay=0.0,
        user_agent="TestAgent/1.0",
    )
