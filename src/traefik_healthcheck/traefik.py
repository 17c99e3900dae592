"""Traefik health checks.

A Traefik tier is healthy when, in order:

1. every configured instance reports at least ``min_services`` backends and
   at least ``min_services`` frontends on ``/api/providers``;
2. when TTL rotation is enabled, no instance has been up longer than the TTL
   according to ``/health``;
3. no configured entrypoint answers with a 5xx status or fails to answer.

Evaluation stops at the first failure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from traefik_healthcheck.config import ProxyTarget
from traefik_healthcheck.exceptions import ProbeError
from traefik_healthcheck.http import (
    DEFAULT_TIMEOUT,
    build_url,
    create_probe_client,
    get_json,
    get_status,
)
from traefik_healthcheck.logging import get_logger

logger = get_logger(__name__)

PROVIDERS_PATH = "/api/providers"
HEALTH_PATH = "/health"
DEFAULT_PROVIDER = "consul_catalog"


@dataclass(frozen=True)
class ProviderSnapshot:
    """Backend and frontend names registered with one provider of a Traefik instance."""

    backends: frozenset[str]
    frontends: frozenset[str]

    @classmethod
    def from_payload(cls, payload: Any, provider: str = DEFAULT_PROVIDER) -> ProviderSnapshot:
        """Build a snapshot from a decoded ``/api/providers`` payload.

        A missing provider, or a provider without a ``backends`` or
        ``frontends`` section, counts as zero names.

        Raises:
            ValueError: If the payload or one of its sections is not an object.
        """
        if not isinstance(payload, Mapping):
            raise ValueError(f"providers payload must be an object, got {type(payload).__name__}")
        section = payload.get(provider)
        if section is None:
            section = {}
        if not isinstance(section, Mapping):
            raise ValueError(f"provider '{provider}' must be an object")
        return cls(
            backends=_names(section, "backends"),
            frontends=_names(section, "frontends"),
        )


def _names(section: Mapping[str, Any], key: str) -> frozenset[str]:
    value = section.get(key)
    if value is None:
        return frozenset()
    if not isinstance(value, Mapping):
        raise ValueError(f"'{key}' must be an object, got {type(value).__name__}")
    return frozenset(value)


@dataclass(frozen=True)
class UptimeSnapshot:
    """Uptime of a Traefik instance as reported by ``/health``."""

    uptime_sec: float

    @classmethod
    def from_payload(cls, payload: Any) -> UptimeSnapshot:
        """Build a snapshot from a decoded ``/health`` payload.

        Raises:
            ValueError: If ``uptime_sec`` is missing or not a number.
        """
        if not isinstance(payload, Mapping):
            raise ValueError(f"health payload must be an object, got {type(payload).__name__}")
        uptime = payload.get("uptime_sec")
        if isinstance(uptime, bool) or not isinstance(uptime, int | float):
            raise ValueError("health payload has no numeric 'uptime_sec'")
        return cls(uptime_sec=float(uptime))

    def exceeds(self, ttl: int) -> bool:
        """Check if the whole seconds of uptime are strictly greater than ``ttl``."""
        return int(self.uptime_sec) > ttl


class TraefikProber:
    """Probes Traefik instances and entrypoints.

    The client skips TLS verification: Traefik APIs and entrypoints are
    internal and often serve self-signed certificates.

    Attributes:
        client: HTTP client shared by every request of a poll.
        provider: Key of the provider whose backends and frontends are counted.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        provider: str = DEFAULT_PROVIDER,
    ) -> None:
        self.client = client or create_probe_client(timeout=timeout, verify=False)
        self.provider = provider

    def fetch_providers(self, host: str) -> ProviderSnapshot:
        """Fetch the provider listing of one Traefik instance.

        Raises:
            ProbeError: On transport failure, a non-200 status, or a malformed payload.
        """
        url = build_url(host, PROVIDERS_PATH)
        payload = get_json(self.client, url)
        try:
            return ProviderSnapshot.from_payload(payload, self.provider)
        except ValueError as e:
            raise ProbeError(f"Malformed providers payload from {url}: {e}", url) from e

    def fetch_uptime(self, host: str) -> UptimeSnapshot:
        """Fetch the uptime of one Traefik instance.

        Raises:
            ProbeError: On transport failure, a non-200 status, or a malformed payload.
        """
        url = build_url(host, HEALTH_PATH)
        payload = get_json(self.client, url)
        try:
            return UptimeSnapshot.from_payload(payload)
        except ValueError as e:
            raise ProbeError(f"Malformed health payload from {url}: {e}", url) from e

    def check_providers(self, target: ProxyTarget) -> bool:
        """Check that ``target`` has enough backends and frontends registered."""
        target_logger = logger.with_context(target=target.host, probe="providers")
        try:
            snapshot = self.fetch_providers(target.host)
        except ProbeError as e:
            target_logger.warning("Error fetching traefik providers: %s", e)
            return False

        if len(snapshot.backends) < target.min_services:
            target_logger.warning(
                "No backends found in Traefik (%d < %d)",
                len(snapshot.backends),
                target.min_services,
            )
            return False

        if len(snapshot.frontends) < target.min_services:
            target_logger.warning(
                "No frontends found in Traefik (%d < %d)",
                len(snapshot.frontends),
                target.min_services,
            )
            return False

        return True

    def check_uptime(self, target: ProxyTarget, ttl: int) -> bool:
        """Check that ``target`` has not outlived ``ttl`` seconds."""
        target_logger = logger.with_context(target=target.host, probe="uptime")
        try:
            snapshot = self.fetch_uptime(target.host)
        except ProbeError as e:
            target_logger.warning("Error fetching traefik health: %s", e)
            return False

        if snapshot.exceeds(ttl):
            target_logger.warning(
                "Server %s reached max ttl of %d (uptime %ds)",
                target.host,
                ttl,
                int(snapshot.uptime_sec),
            )
            return False

        return True

    def check_entrypoint(self, url: str) -> bool:
        """Check that an entrypoint answers without a server error.

        4xx answers are accepted: entrypoints may reject unauthenticated probes.
        Only the status line is waited for; the body is never read.
        """
        try:
            status_code = get_status(self.client, url)
        except ProbeError as e:
            logger.warning(
                "Error contacting traefik entrypoint: %s", e, extra={"target": url}
            )
            return False

        if status_code >= 500:
            logger.warning(
                "Error checking entrypoint response. Got status code %d",
                status_code,
                extra={"target": url, "status_code": status_code},
            )
            return False

        return True

    def is_healthy(
        self,
        targets: Iterable[ProxyTarget],
        entrypoints: Iterable[str],
        ttl: int,
    ) -> bool:
        """Check the whole Traefik tier, stopping at the first failure.

        Args:
            targets: Traefik instances to probe.
            entrypoints: Entrypoint URLs to probe.
            ttl: Effective TTL in seconds; 0 skips the uptime check.

        Returns:
            True if every check passed for every target and entrypoint.
        """
        targets = tuple(targets)

        if not all(self.check_providers(target) for target in targets):
            return False

        if ttl != 0 and not all(self.check_uptime(target, ttl) for target in targets):
            return False

        return all(self.check_entrypoint(url) for url in entrypoints)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()


__all__ = [
    "DEFAULT_PROVIDER",
    "HEALTH_PATH",
    "PROVIDERS_PATH",
    "ProviderSnapshot",
    "TraefikProber",
    "UptimeSnapshot",
]
