"""Shared pytest fixtures for the Traefik health checker tests.

Upstreams (Consul, Traefik, entrypoints) are simulated with ``FakeUpstream``,
which routes requests by exact URL through ``httpx.MockTransport``::

    def test_example(upstream: FakeUpstream) -> None:
        upstream.add(LEADER_URL, json="10.0.0.1:8300")
        prober = ConsulProber(client=upstream.client())
        assert prober.is_healthy(CONSUL_HOST)

Requests to URLs without a route fail with ``httpx.ConnectError``, the same
way an unreachable host does.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from traefik_healthcheck.config import Config, ProxyTarget

CONSUL_HOST = "consul:8500"
LEADER_URL = "http://consul:8500/v1/status/leader"
TRAEFIK_HOST = "traefik-a:8080"
PROVIDERS_URL = "http://traefik-a:8080/api/providers"
HEALTH_URL = "http://traefik-a:8080/health"

Route = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """URL-routed fake for every upstream a probe talks to.

    Routes can be replaced at any time, including while a polling thread is
    using a client built from this instance.
    """

    def __init__(self) -> None:
        self._routes: dict[str, Route] = {}
        self._lock = threading.Lock()
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        *,
        status_code: int = 200,
        json: Any = None,
        content: bytes | None = None,
    ) -> None:
        """Answer ``url`` with a fixed response."""

        def route(request: httpx.Request) -> httpx.Response:
            if content is not None:
                return httpx.Response(status_code, content=content)
            if json is not None:
                return httpx.Response(status_code, json=json)
            return httpx.Response(status_code)

        self.add_route(url, route)

    def add_stream(
        self,
        url: str,
        chunks: Callable[[], Iterator[bytes]],
        status_code: int = 200,
    ) -> None:
        """Answer ``url`` with a chunked body produced lazily by ``chunks()``."""

        def route(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, content=chunks())

        self.add_route(url, route)

    def add_error(self, url: str, error: type[httpx.TransportError] = httpx.ConnectError) -> None:
        """Make requests to ``url`` fail with a transport error."""

        def route(request: httpx.Request) -> httpx.Response:
            raise error(f"simulated {error.__name__}", request=request)

        self.add_route(url, route)

    def add_route(self, url: str, route: Route) -> None:
        with self._lock:
            self._routes[url] = route

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            route = self._routes.get(str(request.url))
        if route is None:
            raise httpx.ConnectError(f"no route to {request.url}", request=request)
        return route(request)

    def client(self, **kwargs: Any) -> httpx.Client:
        """Build an ``httpx.Client`` whose requests are served by this fake."""
        return httpx.Client(transport=httpx.MockTransport(self.handler), **kwargs)

    @property
    def requested_urls(self) -> list[str]:
        with self._lock:
            return [str(request.url) for request in self.requests]


class TrickleBody:
    """Chunked body that yields one chunk every ``delay`` seconds, without end.

    ``produced`` counts the chunks generated so far across all responses.
    """

    def __init__(self, chunk: bytes = b" ", delay: float = 0.05) -> None:
        self.chunk = chunk
        self.delay = delay
        self.produced = 0

    def __call__(self) -> Iterator[bytes]:
        while True:
            time.sleep(self.delay)
            self.produced += 1
            yield self.chunk


def providers_payload(
    backends: int = 2,
    frontends: int = 2,
    provider: str = "consul_catalog",
) -> dict[str, Any]:
    """Build a Traefik 1.x ``/api/providers`` payload with the given counts."""
    return {
        provider: {
            "backends": {f"backend-svc{i}": {"servers": {}} for i in range(backends)},
            "frontends": {f"frontend-svc{i}": {"routes": {}} for i in range(frontends)},
        }
    }


def health_payload(uptime_sec: float) -> dict[str, Any]:
    """Build a Traefik ``/health`` payload."""
    return {
        "pid": 1,
        "uptime": f"{uptime_sec}s",
        "uptime_sec": uptime_sec,
        "total_count": 42,
    }


def make_config(**overrides: Any) -> Config:
    """Create a Config pointing at the fake upstreams."""
    defaults: dict[str, Any] = {
        "consul_host": CONSUL_HOST,
        "traefik_hosts": (ProxyTarget(host=TRAEFIK_HOST, min_services=1),),
        "poll_interval": 1,
    }
    defaults.update(overrides)
    return Config(**defaults)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def healthy_upstream(upstream: FakeUpstream) -> FakeUpstream:
    """Consul with a leader and one Traefik instance with two services."""
    upstream.add(LEADER_URL, json="10.0.0.1:8300")
    upstream.add(PROVIDERS_URL, json=providers_payload())
    upstream.add(HEALTH_URL, json=health_payload(100.0))
    return upstream
