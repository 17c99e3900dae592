"""Shared HTTP helpers for the upstream probes.

All outbound calls go through an ``httpx.Client`` created here so that every
probe carries a bounded timeout. Failures are raised as ``ProbeError`` for the
probers to log and turn into an unhealthy verdict.

httpx applies its read timeout to each network read, so a body that keeps
trickling in would never time out on its own. Status probes therefore never
read the body, and JSON fetches stop reading once ``max_duration`` elapses.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx

from traefik_healthcheck.exceptions import ProbeError

DEFAULT_TIMEOUT = 10.0


def create_probe_client(
    timeout: float = DEFAULT_TIMEOUT,
    verify: bool = True,
    headers: dict[str, str] | None = None,
) -> httpx.Client:
    """Create an HTTP client for upstream probes.

    Args:
        timeout: Timeout in seconds applied to connect, read, write and pool.
        verify: Whether to verify TLS certificates. Traefik entrypoints are
            internal and commonly use self-signed certificates.
        headers: Headers sent with every request.

    Returns:
        A configured ``httpx.Client``. Redirects are followed.
    """
    return httpx.Client(
        timeout=httpx.Timeout(timeout),
        verify=verify,
        headers=headers,
        follow_redirects=True,
    )


def build_url(host: str, path: str = "") -> str:
    """Join a ``host:port`` (or a base URL) with a path.

    A host without a scheme is addressed over plain HTTP.
    """
    base = host if "://" in host else f"http://{host}"
    return f"{base.rstrip('/')}{path}"


def validate_url(url: str) -> None:
    """Check that ``url`` is an absolute http(s) URL httpx can request.

    Raises:
        ValueError: If the URL cannot be parsed or has no http(s) scheme or host.
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValueError(str(e)) from e
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"scheme must be http or https, got '{parsed.scheme}'")
    if not parsed.host:
        raise ValueError("missing host")


@contextmanager
def _request_errors(url: str) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as e:
        raise ProbeError(f"Request to {url} timed out: {e}", url) from e
    except httpx.HTTPError as e:
        raise ProbeError(f"Request to {url} failed: {e}", url) from e
    except httpx.InvalidURL as e:
        # Not an HTTPError subclass
        raise ProbeError(f"Invalid URL {url}: {e}", url) from e
    except OSError as e:
        raise ProbeError(f"Request to {url} failed with OS error: {e}", url) from e


def get_status(client: httpx.Client, url: str) -> int:
    """GET ``url`` and return its status code without reading the body.

    Raises:
        ProbeError: On transport failure or an invalid URL.
    """
    with _request_errors(url), client.stream("GET", url) as response:
        return response.status_code


def _read_body(response: httpx.Response, url: str, deadline: float) -> bytes:
    chunks = []
    for chunk in response.iter_bytes():
        chunks.append(chunk)
        if time.monotonic() > deadline:
            raise ProbeError(f"Response from {url} took too long to read", url)
    return b"".join(chunks)


def get_json(client: httpx.Client, url: str, max_duration: float | None = None) -> Any:
    """GET ``url`` and decode its JSON body.

    Args:
        client: Client to send the request with.
        url: URL to fetch.
        max_duration: Upper bound in seconds for the whole exchange, body
            included. Defaults to the client's read timeout.

    Raises:
        ProbeError: On transport failure, a non-200 status, a body that is
            not fully received within ``max_duration``, or an undecodable body.
    """
    if max_duration is None:
        max_duration = client.timeout.read or DEFAULT_TIMEOUT
    deadline = time.monotonic() + max_duration

    with _request_errors(url), client.stream("GET", url) as response:
        if response.status_code != 200:
            raise ProbeError(
                f"Got status code {response.status_code} from {url}",
                url,
                status_code=response.status_code,
            )
        body = _read_body(response, url, deadline)

    try:
        return json.loads(body)
    except ValueError as e:
        raise ProbeError(f"Invalid JSON from {url}: {e}", url, status_code=200) from e


__all__ = [
    "DEFAULT_TIMEOUT",
    "build_url",
    "create_probe_client",
    "get_json",
    "get_status",
    "validate_url",
]
