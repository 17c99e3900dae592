"""Exception types raised by the health checker.

Two categories exist:

- ``ConfigurationError``: the configuration file is present but cannot be
  used. Fatal at startup.
- ``ProbeError``: an upstream (Consul, Traefik, an entrypoint) could not be
  reached or answered with something unusable. Never fatal; a probe that
  raises it is reported as unhealthy for the current poll cycle only.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when the configuration file is malformed.

    This exception should be used for:
    - Invalid JSON in the configuration file
    - Values of the wrong type (e.g. a string poll interval)
    - Values that break an invariant (e.g. a non-positive poll interval)

    Example:
        >>> raise ConfigurationError("PollInterval must be a positive integer, got 0")
    """


class ProbeError(Exception):
    """Raised when an upstream probe request fails.

    Attributes:
        url: The URL that was being probed.
        status_code: The HTTP status code, if a response was received.
    """

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


__all__ = ["ConfigurationError", "ProbeError"]
