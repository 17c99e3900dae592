"""Command-line interface argument parsing for the Traefik health checker.

This module provides the CLI argument parser that handles:
- Configuration file path
- Single-evaluation mode (--once)
- Log level and log format overrides
- Environment file path
"""

from __future__ import annotations

import argparse
from pathlib import Path

from traefik_healthcheck.config import DEFAULT_CONFIG_PATH


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace with the following attributes:
        - config: Path to the JSON configuration file
        - once: Whether to evaluate health once and exit
        - log_level: Logging level
        - log_json: Whether to emit JSON logs
        - env_file: Path to .env file
    """
    parser = argparse.ArgumentParser(
        prog="traefik-healthcheck",
        description="Aggregate Consul and Traefik health into a single HTTP health signal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"The path to the traefik-healthcheck config file (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Evaluate health once and exit with 0 when healthy, 1 otherwise",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides HEALTHCHECK_LOG_LEVEL)",
    )

    parser.add_argument(
        "--log-json",
        action="store_true",
        default=None,
        help="Emit JSON logs (overrides HEALTHCHECK_LOG_JSON)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
