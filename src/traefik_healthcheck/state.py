"""Shared health state between the polling loop and the HTTP responder.

The polling loop is the only writer. The responder only needs to read, so it
is handed the narrow ``HealthView`` protocol rather than the state itself.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable


@runtime_checkable
class HealthView(Protocol):
    """Read-only access to the current aggregate verdict."""

    def is_healthy(self) -> bool:
        """Return the most recently recorded verdict."""
        ...  # pragma: no cover


class HealthState:
    """Lock-guarded aggregate health verdict.

    Starts unhealthy until the first poll completes.
    """

    def __init__(self, healthy: bool = False) -> None:
        self._lock = threading.Lock()
        self._healthy = healthy
        self._updates = 0

    def is_healthy(self) -> bool:
        """Return the current verdict."""
        with self._lock:
            return self._healthy

    @property
    def update_count(self) -> int:
        """Number of verdicts recorded since startup."""
        with self._lock:
            return self._updates

    def update(self, healthy: bool) -> bool:
        """Overwrite the verdict.

        Args:
            healthy: The new verdict.

        Returns:
            The previous verdict.
        """
        with self._lock:
            previous = self._healthy
            self._healthy = healthy
            self._updates += 1
            return previous


__all__ = ["HealthState", "HealthView"]
