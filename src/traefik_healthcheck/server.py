"""HTTP responder exposing the aggregate verdict.

Every request to ``/``, whatever its method, is answered from the shared
state with an empty body: 200 when healthy, 500 when not. The handler never
touches the network, so the responder stays available while a poll is in
flight.

``HealthServer`` runs the application under uvicorn on a background thread,
next to the polling loop.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request, Response, status

from traefik_healthcheck.logging import get_logger

if TYPE_CHECKING:
    from starlette.types import ASGIApp

    from traefik_healthcheck.state import HealthView

logger = get_logger(__name__)

STARTUP_TIMEOUT = 5.0
SHUTDOWN_TIMEOUT = 5.0


def create_app(health: HealthView) -> FastAPI:
    """Create the health responder application.

    The route is registered without a method list, so any method, including
    ones FastAPI does not know about, reaches the handler.

    Args:
        health: Read-only view of the aggregate verdict.
    """
    app = FastAPI(
        title="traefik-healthcheck",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    async def health_status(request: Request) -> Response:
        if health.is_healthy():
            return Response(status_code=status.HTTP_200_OK)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    app.add_route("/", health_status, include_in_schema=False)
    return app


class HealthServer:
    """Serves an ASGI app with uvicorn on a daemon thread.

    Example:
        server = HealthServer(create_app(state), host="0.0.0.0", port=10700)
        server.start()
        ...
        server.shutdown()
    """

    def __init__(self, app: ASGIApp, host: str, port: int) -> None:
        self._address = f"{host}:{port}"
        self._server = uvicorn.Server(
            uvicorn.Config(
                app=app,
                host=host,
                port=port,
                lifespan="off",
                log_level="warning",
                access_log=False,
            )
        )
        self._thread = threading.Thread(
            target=self._server.run,
            name="health-server",
            daemon=True,
        )

    def start(self) -> None:
        """Start serving and block until the socket accepts connections.

        uvicorn exits its thread when it cannot bind, which is reported here.

        Raises:
            RuntimeError: If the server stops before it is listening, or is not
                listening within ``STARTUP_TIMEOUT`` seconds.
        """
        self._thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not self._server.started:
            if not self._thread.is_alive():
                raise RuntimeError(f"HTTP server failed to start on {self._address}")
            if time.monotonic() > deadline:
                self.shutdown()
                raise RuntimeError(
                    f"HTTP server did not start on {self._address} within {STARTUP_TIMEOUT}s"
                )
            time.sleep(0.05)

        logger.info("HTTP server listening on: %s", self._address)

    def shutdown(self) -> None:
        """Ask uvicorn to exit and wait up to ``SHUTDOWN_TIMEOUT`` seconds for it."""
        if not self._thread.is_alive():
            return
        self._server.should_exit = True
        self._thread.join(timeout=SHUTDOWN_TIMEOUT)
        if self._thread.is_alive():
            logger.warning("HTTP server thread did not terminate in time")
        else:
            logger.info("HTTP server stopped")


__all__ = ["HealthServer", "create_app"]
