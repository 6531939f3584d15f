"""
Embeddable dashboard server.

Lifecycle:  stopped --start()--> listening --stop()--> stopped

The listening socket is bound by start() itself, so a bad address or a
busy port raises OSError right there, and port 0 (ephemeral) is
supported. The bound port is available as ``actual_port``.
uvicorn runs on the caller's event loop with log_config=None so the
host process keeps control of logging.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from pathlib import Path

import uvicorn

from gateway_metrics.main import create_app
from gateway_metrics.services.store import MetricsStore

logger = logging.getLogger(__name__)

DEFAULT_BIND = "127.0.0.1"
DEFAULT_PORT = 8080
_STARTUP_POLL_SECONDS = 0.01


class DashboardServer:
    """Serves the dashboard app for one store."""

    def __init__(
        self,
        store: MetricsStore,
        bind: str = DEFAULT_BIND,
        port: int = DEFAULT_PORT,
        dashboard_dir: str | Path | None = None,
    ) -> None:
        self.store = store
        self.bind = bind
        self.port = port
        self.dashboard_dir = dashboard_dir
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def actual_port(self) -> int:
        """The bound port, only valid after start() returns."""
        if self._socket is None:
            raise RuntimeError("Server not started")
        return self._socket.getsockname()[1]

    async def start(self) -> None:
        """Bind, start serving, and return once uvicorn reports ready."""
        if self.running:
            return

        family = socket.AF_INET6 if ":" in self.bind else socket.AF_INET
        self._socket = socket.create_server((self.bind, self.port), family=family)

        config = uvicorn.Config(
            create_app(self.store, self.dashboard_dir),
            log_config=None,
            lifespan="off",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]), name="dashboard-server",
        )

        while not self._server.started:
            if self._task.done():
                # Startup failed; surface the task's exception (or a generic one).
                self._task.result()
                raise RuntimeError("Dashboard server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

        logger.info("Dashboard at http://%s:%d", self.bind, self.actual_port)

    async def stop(self) -> None:
        """Stop accepting requests and wait until the listener is closed."""
        if self._server is not None and self._task is not None:
            self._server.should_exit = True
            await self._task
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._task = None
        self._socket = None
