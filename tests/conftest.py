"""Shared fixtures: a scripted upstream behind httpx.MockTransport and a fake clock."""

import json
from typing import Any, Optional

import httpx
import pytest

from livetv_proxy.fetcher import UpstreamFetcher


class FakeUpstream:
    """Scripted upstream server that counts requests per URL."""

    def __init__(self):
        self.routes: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        status: int = 200,
        content: bytes | str = b"",
        content_type: Optional[str] = None,
        json_body: Any = None,
        network_error: bool = False,
    ) -> None:
        """Register a response for a URL (query string ignored when matching)."""
        if json_body is not None:
            content = json.dumps(json_body)
            content_type = content_type or "application/json"
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.routes[url] = {
            "status": status,
            "content": content,
            "content_type": content_type,
            "network_error": network_error,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        full_url = str(request.url)
        bare_url = str(request.url).split("?", 1)[0]
        route = self.routes.get(full_url) or self.routes.get(bare_url)

        if route is None:
            return httpx.Response(404, content=b"not found")
        if route["network_error"]:
            raise httpx.ConnectError("connection refused", request=request)

        headers = {"Content-Type": route["content_type"]} if route["content_type"] else {}
        return httpx.Response(route["status"], content=route["content"], headers=headers)

    def count(self, url: str) -> int:
        """Number of requests made to ``url`` (query string ignored)."""
        return sum(1 for r in self.requests if str(r.url).split("?", 1)[0] == url)

    def last_request(self, url: str) -> httpx.Request:
        return [r for r in self.requests if str(r.url).split("?", 1)[0] == url][-1]

    def fetcher(self) -> UpstreamFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=True)
        return UpstreamFetcher(client, provider_origins={"pluto.tv": "https://pluto.tv"})


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def upstream():
    """Fresh scripted upstream for each test."""
    return FakeUpstream()


@pytest.fixture
def clock():
    """Controllable clock for cache tests."""
    return FakeClock()
