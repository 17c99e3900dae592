"""Aggregate health verdict and the polling loop that maintains it.

The load balancer is healthy when Consul has a leader AND the Traefik tier
passes its checks. The Traefik checks are skipped when Consul already failed.

The polling loop evaluates that verdict every ``poll_interval`` seconds and
overwrites the shared ``HealthState`` with the result. It runs until
``stop()`` is called.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from traefik_healthcheck.logging import get_logger
from traefik_healthcheck.state import HealthState

if TYPE_CHECKING:
    from traefik_healthcheck.config import Config
    from traefik_healthcheck.consul import ConsulProber
    from traefik_healthcheck.traefik import TraefikProber

logger = get_logger(__name__)


class HealthAggregator:
    """Combines the Consul and Traefik probes into one verdict.

    Attributes:
        config: Application configuration.
        consul: Prober for the Consul leader check.
        traefik: Prober for the Traefik tier.
        effective_ttl: TTL used for uptime rotation, 0 when disabled.
        state: Shared state the verdict is written to.
        stop_event: Set to end the polling loop.
    """

    def __init__(
        self,
        config: Config,
        consul: ConsulProber,
        traefik: TraefikProber,
        effective_ttl: int = 0,
        state: HealthState | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.config = config
        self.consul = consul
        self.traefik = traefik
        self.effective_ttl = effective_ttl
        self.state = state or HealthState()
        self.stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None

    def is_load_balancer_healthy(self) -> bool:
        """Evaluate the aggregate verdict once."""
        return self.consul.is_healthy(self.config.consul_host) and self.traefik.is_healthy(
            self.config.traefik_hosts,
            self.config.traefik_entrypoints,
            self.effective_ttl,
        )

    def poll_once(self) -> bool:
        """Evaluate the verdict and record it in the shared state.

        An unexpected error while probing is recorded as unhealthy.

        Returns:
            The recorded verdict.
        """
        try:
            healthy = self.is_load_balancer_healthy()
        except Exception as e:
            # Probers handle upstream errors themselves; anything reaching
            # here is a bug, and the verdict must still fail closed.
            logger.exception(
                "Unexpected error while evaluating health: %s",
                e,
                extra={"error_type": type(e).__name__},
            )
            healthy = False

        previous = self.state.update(healthy)
        if healthy != previous:
            if healthy:
                logger.info("Load balancer is now healthy")
            else:
                logger.warning("Load balancer is now unhealthy")
        else:
            logger.debug("Load balancer healthy: %s", healthy)
        return healthy

    def run(self) -> None:
        """Poll until ``stop()`` is called."""
        logger.info(
            "Polling health every %ss (consul=%s, traefik hosts=%d, entrypoints=%d, ttl=%ss)",
            self.config.poll_interval,
            self.config.consul_host,
            len(self.config.traefik_hosts),
            len(self.config.traefik_entrypoints),
            self.effective_ttl,
        )
        while not self.stop_event.is_set():
            self.poll_once()
            self.stop_event.wait(self.config.poll_interval)
        logger.info("Health polling stopped")

    def start(self) -> threading.Thread:
        """Run the polling loop on a daemon thread.

        Returns:
            The started thread.
        """
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Health polling is already running")
        self.stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="health-poller", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Stop the polling loop.

        Args:
            timeout: Seconds to wait for the polling thread to finish, if it
                was started with ``start()``. An in-flight poll is bounded by
                the probe timeouts.
        """
        self.stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Health polling thread did not terminate in time")

    @property
    def is_running(self) -> bool:
        """Check if the polling loop is active."""
        return self._thread is not None and self._thread.is_alive()


__all__ = ["HealthAggregator"]
