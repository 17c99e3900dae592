"""SIGINT/SIGTERM handling for continuous mode.

The signal handler only records the signal. ``wait`` runs on the main thread
and, once a signal has arrived, sets the stop event shared with the polling
loop, which wakes the poller out of its sleep between polls.
"""

from __future__ import annotations

import signal
import threading
from types import FrameType

from traefik_healthcheck.logging import get_logger

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownSignal:
    """Turns a termination signal into a set stop event.

    Attributes:
        stop_event: Event shared with the polling loop.
        received: The signal that requested shutdown, if any.
    """

    def __init__(self, stop_event: threading.Event) -> None:
        self.stop_event = stop_event
        self.received: signal.Signals | None = None

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        # No locks here: the main thread may be inside stop_event.wait() and
        # hold the event's condition lock when the signal is delivered.
        self.received = signal.Signals(signum)

    def install(self) -> None:
        for signum in SHUTDOWN_SIGNALS:
            signal.signal(signum, self.handle_signal)

    def wait(self, interval: float = 0.5) -> signal.Signals | None:
        """Block until a signal arrives or the stop event is set elsewhere.

        Args:
            interval: Seconds between checks for a received signal.

        Returns:
            The received signal, or None if the stop event was set directly.
        """
        while self.received is None:
            if self.stop_event.wait(interval):
                break
        if self.received is not None:
            logger.info("Received %s, shutting down...", self.received.name)
        self.stop_event.set()
        return self.received


__all__ = ["SHUTDOWN_SIGNALS", "ShutdownSignal"]
