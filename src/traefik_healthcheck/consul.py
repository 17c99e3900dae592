"""Consul leader check.

Consul is healthy when ``GET /v1/status/leader`` names a leader. The endpoint
answers with a JSON string such as ``"10.0.0.1:8300"``; an empty string means
the cluster has no leader.
"""

from __future__ import annotations

import httpx

from traefik_healthcheck.exceptions import ProbeError
from traefik_healthcheck.http import DEFAULT_TIMEOUT, build_url, create_probe_client, get_json
from traefik_healthcheck.logging import get_logger

logger = get_logger(__name__)

CONSUL_LEADER_PATH = "/v1/status/leader"


class ConsulProber:
    """Checks that the Consul cluster has elected a leader.

    Attributes:
        client: HTTP client used for the leader query.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        token: str = "",
    ) -> None:
        """Initialize the prober.

        Args:
            client: Optional pre-built HTTP client (used by tests).
            timeout: Request timeout in seconds when building the client.
            token: Optional ACL token sent as ``X-Consul-Token``.
        """
        headers = {"X-Consul-Token": token} if token else None
        self.client = client or create_probe_client(timeout=timeout, headers=headers)

    def get_leader(self, address: str) -> str:
        """Query the current leader.

        Args:
            address: ``host:port`` (or base URL) of the Consul HTTP API.

        Returns:
            The leader address, empty when there is none.

        Raises:
            ProbeError: If the query fails or the answer is not a string.
        """
        url = build_url(address, CONSUL_LEADER_PATH)
        leader = get_json(self.client, url)
        if not isinstance(leader, str):
            raise ProbeError(
                f"Expected a leader string from {url}, got {type(leader).__name__}", url
            )
        return leader

    def is_healthy(self, address: str) -> bool:
        """Check that Consul at ``address`` reports a non-empty leader.

        Never raises; any failure is logged and reported as unhealthy.
        """
        try:
            leader = self.get_leader(address)
        except ProbeError as e:
            logger.warning("Error querying consul leader: %s", e, extra={"target": address})
            return False

        if not leader:
            logger.warning("Consul reports no leader", extra={"target": address})
            return False

        logger.debug("Consul leader is %s", leader, extra={"target": address})
        return True

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()


__all__ = ["CONSUL_LEADER_PATH", "ConsulProber"]
