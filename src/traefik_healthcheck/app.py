"""Core application runner for the Traefik health checker.

This module wires the components together and runs them:
- Configuration loading with CLI overrides
- Effective TTL resolution (once per process)
- HTTP responder lifecycle
- Health polling loop
- Single-evaluation mode (--once)

A malformed configuration file or an HTTP server that cannot bind aborts
startup with exit code 1. Upstream failures never do; they only turn the
verdict unhealthy.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any

from traefik_healthcheck.aggregator import HealthAggregator
from traefik_healthcheck.cli import parse_args
from traefik_healthcheck.config import Config, load_config
from traefik_healthcheck.consul import ConsulProber
from traefik_healthcheck.exceptions import ConfigurationError
from traefik_healthcheck.jitter import resolve_effective_ttl
from traefik_healthcheck.logging import get_logger, setup_logging
from traefik_healthcheck.server import HealthServer, create_app
from traefik_healthcheck.shutdown import ShutdownSignal
from traefik_healthcheck.traefik import TraefikProber

logger = get_logger(__name__)


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Args:
        config: Configuration loaded from the environment and config file.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    overrides: dict[str, Any] = {}

    if parsed.log_level:
        overrides["log_level"] = parsed.log_level
    if parsed.log_json:
        overrides["log_json"] = True

    if overrides:
        return replace(config, **overrides)
    return config


def create_aggregator(config: Config, effective_ttl: int) -> HealthAggregator:
    """Create the probers and the aggregator for ``config``."""
    consul = ConsulProber(timeout=config.request_timeout, token=config.consul_token)
    traefik = TraefikProber(timeout=config.request_timeout, provider=config.traefik_provider)
    return HealthAggregator(config, consul, traefik, effective_ttl=effective_ttl)


def close_aggregator(aggregator: HealthAggregator) -> None:
    """Release the probers' HTTP clients."""
    aggregator.consul.close()
    aggregator.traefik.close()


def run_once_mode(aggregator: HealthAggregator) -> int:
    """Evaluate health once.

    Returns:
        Exit code: 0 when healthy, 1 otherwise.
    """
    logger.info("Evaluating health once (--once mode)")
    healthy = aggregator.poll_once()
    logger.info("Load balancer healthy: %s", healthy)
    return 0 if healthy else 1


def run_continuous_mode(aggregator: HealthAggregator) -> int:
    """Serve the verdict over HTTP and poll until SIGINT/SIGTERM.

    Returns:
        Exit code: 0 after a graceful shutdown, 1 if the HTTP server could not start.
    """
    config = aggregator.config
    server = HealthServer(
        create_app(aggregator.state), host=config.listen_host, port=config.listen_port
    )
    try:
        server.start()
    except RuntimeError as e:
        logger.error("%s", e)
        return 1

    shutdown = ShutdownSignal(aggregator.stop_event)
    shutdown.install()
    aggregator.start()
    try:
        shutdown.wait()
    finally:
        aggregator.stop(timeout=config.request_timeout)
        server.shutdown()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)
    setup_logging(level=parsed.log_level or "INFO", json_format=bool(parsed.log_json))

    logger.info("Starting Traefik Healthcheck...")
    logger.info('Using config file "%s"', parsed.config)

    try:
        config = apply_cli_overrides(load_config(parsed.config, parsed.env_file), parsed)
    except ConfigurationError as e:
        logger.error("Unable to load configuration: %s", e)
        return 1

    setup_logging(level=config.log_level, json_format=config.log_json)

    effective_ttl = resolve_effective_ttl(config)
    logger.info("Server TTL Seconds: %d", effective_ttl)

    aggregator = create_aggregator(config, effective_ttl)
    try:
        if parsed.once:
            return run_once_mode(aggregator)
        return run_continuous_mode(aggregator)
    finally:
        close_aggregator(aggregator)
        logger.info("Finished.")


__all__ = [
    "apply_cli_overrides",
    "create_aggregator",
    "main",
    "run_continuous_mode",
    "run_once_mode",
]
