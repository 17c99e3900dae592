"""Traefik Healthcheck - Consul and Traefik health aggregated into one HTTP signal."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("traefik-healthcheck")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

from traefik_healthcheck.aggregator import HealthAggregator
from traefik_healthcheck.app import main
from traefik_healthcheck.config import Config, ProxyTarget, load_config
from traefik_healthcheck.state import HealthState

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "Config",
    "HealthAggregator",
    "HealthState",
    "ProxyTarget",
    "load_config",
    "main",
]
