"""Configuration loading from a JSON file and environment variables.

The health-check settings live in a JSON file whose keys are the ones
existing deployments already use (``ListenAddr``, ``PollInterval``,
``TraefikHosts``, ``ConsulHost``, ``TraefikEntrypoints``, ``HealthyTTLSec``,
``HealthyTTLOffset``). Keys are matched case-insensitively; keys present in
the file replace the defaults, absent keys keep them.

A missing or unreadable file falls back to the defaults. A file that exists
but cannot be decoded, or holds values of the wrong type, raises
``ConfigurationError``.

Process settings come from the environment (optionally via a ``.env`` file):
- HEALTHCHECK_LOG_LEVEL: Log level (default: INFO)
- HEALTHCHECK_LOG_JSON: Emit JSON logs (default: false)
- CONSUL_HTTP_TOKEN: ACL token sent to Consul (default: empty)
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from traefik_healthcheck.exceptions import ConfigurationError
from traefik_healthcheck.http import build_url, validate_url
from traefik_healthcheck.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("./traefik-healthcheck.json")

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Port validation bounds
MIN_PORT = 1
MAX_PORT = 65535


@dataclass(frozen=True)
class ProxyTarget:
    """A Traefik instance to probe.

    Attributes:
        host: ``host:port`` of the Traefik API, or a full base URL.
        min_services: Minimum number of backends and of frontends the
            instance must report to be considered healthy.
    """

    host: str
    min_services: int = 0


@dataclass(frozen=True)
class Config:
    """Application configuration.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation.
    """

    # HTTP responder
    listen_addr: str = "0.0.0.0:10700"

    # Polling
    poll_interval: int = 10  # seconds

    # Traefik
    traefik_hosts: tuple[ProxyTarget, ...] = (ProxyTarget(host="127.0.0.1:8080"),)
    traefik_entrypoints: tuple[str, ...] = ()
    traefik_provider: str = "consul_catalog"  # key in the /api/providers payload

    # Consul
    consul_host: str = "127.0.0.1:8500"
    consul_token: str = field(default="", repr=False)

    # TTL rotation; a base TTL of 0 disables it
    healthy_ttl_sec: int = 0
    healthy_ttl_offset: int = 43200

    # Per-call bound for every outbound probe
    request_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def ttl_rotation_enabled(self) -> bool:
        """Check if uptime-based rotation is configured."""
        return self.healthy_ttl_sec > 0

    @property
    def listen_host(self) -> str:
        """Host part of ``listen_addr``; an empty host binds all interfaces."""
        return split_listen_addr(self.listen_addr)[0]

    @property
    def listen_port(self) -> int:
        """Port part of ``listen_addr``."""
        return split_listen_addr(self.listen_addr)[1]


def split_listen_addr(value: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address.

    Accepts ``":10700"`` (all interfaces) and bracketed IPv6 hosts such as
    ``"[::]:10700"``.

    Args:
        value: The listen address.

    Returns:
        Tuple of (host, port).

    Raises:
        ConfigurationError: If the address has no valid port.
    """
    host, sep, port_str = value.rpartition(":")
    if not sep:
        raise ConfigurationError(f"ListenAddr must be host:port, got '{value}'")
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigurationError(
            f"ListenAddr has an invalid port '{port_str}' in '{value}'"
        ) from None
    if port < MIN_PORT or port > MAX_PORT:
        raise ConfigurationError(
            f"ListenAddr port {port} is not a valid port (must be {MIN_PORT}-{MAX_PORT})"
        )
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Args:
        value: The string value to parse.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.

    Logs a warning if the value is invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logger.warning(
            "Invalid HEALTHCHECK_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _require_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _require_int(value: Any, key: str, minimum: int) -> int:
    """Check that a decoded JSON value is an integer no smaller than ``minimum``.

    Booleans are rejected even though ``bool`` subclasses ``int``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer, got {type(value).__name__}")
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _require_url(value: Any, key: str, host_only: bool = False) -> str:
    """Require a string that httpx can request.

    With ``host_only``, the value is a ``host:port`` (or base URL) that a path
    is appended to.
    """
    value = _require_str(value, key)
    if not value:
        raise ConfigurationError(f"{key} must not be empty")
    try:
        validate_url(build_url(value) if host_only else value)
    except ValueError as e:
        raise ConfigurationError(f"{key} is not a valid URL: '{value}' ({e})") from e
    return value


def _parse_poll_interval(value: Any) -> int:
    return _require_int(value, "PollInterval", 1)


def _parse_ttl(value: Any) -> int:
    return _require_int(value, "HealthyTTLSec", 0)


def _parse_ttl_offset(value: Any) -> int:
    return _require_int(value, "HealthyTTLOffset", 0)


def _parse_traefik_hosts(value: Any) -> tuple[ProxyTarget, ...]:
    """Parse the ``TraefikHosts`` list of ``{"Host": ..., "MinServices": ...}`` objects."""
    if not isinstance(value, list):
        raise ConfigurationError(f"TraefikHosts must be a list, got {type(value).__name__}")

    targets = []
    for index, item in enumerate(value):
        key = f"TraefikHosts[{index}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"{key} must be an object, got {type(item).__name__}")
        fields = {k.lower(): v for k, v in item.items()}
        host = _require_url(fields.get("host"), f"{key}.Host", host_only=True)
        min_services = fields.get("minservices")
        targets.append(
            ProxyTarget(
                host=host,
                min_services=0
                if min_services is None
                else _require_int(min_services, f"{key}.MinServices", 0),
            )
        )
    return tuple(targets)


def _parse_entrypoints(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigurationError(
            f"TraefikEntrypoints must be a list, got {type(value).__name__}"
        )
    return tuple(
        _require_url(url, f"TraefikEntrypoints[{index}]") for index, url in enumerate(value)
    )


# Lowercased JSON key -> (Config attribute, parser)
_FILE_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "listenaddr": ("listen_addr", lambda v: _require_str(v, "ListenAddr")),
    "pollinterval": ("poll_interval", _parse_poll_interval),
    "traefikhosts": ("traefik_hosts", _parse_traefik_hosts),
    "consulhost": ("consul_host", lambda v: _require_url(v, "ConsulHost", host_only=True)),
    "traefikentrypoints": ("traefik_entrypoints", _parse_entrypoints),
    "healthyttlsec": ("healthy_ttl_sec", _parse_ttl),
    "healthyttloffset": ("healthy_ttl_offset", _parse_ttl_offset),
    "traefikprovider": ("traefik_provider", lambda v: _require_str(v, "TraefikProvider")),
}


def parse_config_document(document: Any, base: Config | None = None) -> Config:
    """Apply a decoded JSON configuration document on top of ``base``.

    Args:
        document: The decoded JSON value.
        base: Configuration providing values for absent keys.

    Returns:
        New Config with the document's values applied.

    Raises:
        ConfigurationError: If the document is not an object or holds invalid values.
    """
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Config file must contain a JSON object, got {type(document).__name__}"
        )

    overrides: dict[str, Any] = {}
    for key, value in document.items():
        entry = _FILE_FIELDS.get(key.lower())
        if entry is None:
            logger.warning("Ignoring unknown config key '%s'", key)
            continue
        if value is None:
            continue
        attribute, parser = entry
        overrides[attribute] = parser(value)

    config = replace(base or Config(), **overrides)
    split_listen_addr(config.listen_addr)
    return config


def read_config_file(path: Path, base: Config | None = None) -> Config:
    """Read the JSON configuration file.

    Args:
        path: Path to the JSON configuration file.
        base: Configuration providing values for absent keys.

    Returns:
        Config with the file's values applied, or ``base`` when the file is
        missing or unreadable.

    Raises:
        ConfigurationError: If the file exists but is malformed.
    """
    base = base or Config()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Config file '%s' not found, using defaults", path)
        return base
    except UnicodeDecodeError as e:
        raise ConfigurationError(
            f"Unable to read config file '{path}'. File is not valid UTF-8: {e}"
        ) from e
    except OSError as e:
        logger.warning("Config file '%s' is not readable, using defaults: %s", path, e)
        return base

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Unable to read config file '{path}'. Check json is correct: {e}"
        ) from e

    return parse_config_document(document, base)


def load_config(path: Path = DEFAULT_CONFIG_PATH, env_file: Path | None = None) -> Config:
    """Load configuration from the environment and the JSON configuration file.

    Args:
        path: Path to the JSON configuration file.
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Raises:
        ConfigurationError: If the configuration file is malformed.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    base = Config(
        consul_token=os.getenv("CONSUL_HTTP_TOKEN", ""),
        log_level=_validate_log_level(os.getenv("HEALTHCHECK_LOG_LEVEL", "INFO")),
        log_json=_parse_bool(os.getenv("HEALTHCHECK_LOG_JSON", "")),
    )

    return read_config_file(path, base)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "Config",
    "ProxyTarget",
    "load_config",
    "parse_config_document",
    "read_config_file",
    "split_listen_addr",
]
