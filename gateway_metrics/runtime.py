"""
Wires the pipeline together from Settings.

Start order:  store (migrate) → collector → retention scheduler → dashboard
Stop order:   dashboard → retention scheduler → collector (final flush) → store

A host gateway creates one MetricsRuntime, awaits start(), forwards every
diagnostic event to record(), and awaits stop() on shutdown.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from gateway_metrics.core.config import Settings
from gateway_metrics.schemas.usage import DiagnosticEvent
from gateway_metrics.server import DashboardServer
from gateway_metrics.services.collector import UsageCollector
from gateway_metrics.services.retention import RetentionScheduler
from gateway_metrics.services.store import MetricsStore

logger = logging.getLogger(__name__)


class MetricsRuntime:
    """One gateway's metrics pipeline: store, buffer, cleanup, dashboard."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store = MetricsStore(settings.DB_PATH, echo=settings.DEBUG)
        self.collector = UsageCollector(
            self.store,
            gateway_id=settings.GATEWAY_ID,
            flush_interval=settings.FLUSH_INTERVAL_SECONDS,
            buffer_size=settings.BUFFER_SIZE,
        )
        self.scheduler = RetentionScheduler(
            self.store,
            settings.retention,
            hour_utc=settings.CLEANUP_HOUR_UTC,
        )
        self.server: DashboardServer | None = None
        if settings.DASHBOARD_ENABLED:
            self.server = DashboardServer(
                self.store,
                bind=settings.DASHBOARD_BIND,
                port=settings.DASHBOARD_PORT,
                dashboard_dir=settings.DASHBOARD_DIR,
            )

    async def start(self) -> None:
        await self.store.migrate()
        self.collector.start()
        self.scheduler.start()
        if self.server is not None:
            await self.server.start()
        logger.info("Metrics pipeline started for gateway %s", self.settings.GATEWAY_ID)

    async def record(self, event: DiagnosticEvent | Mapping[str, Any]) -> bool:
        return await self.collector.record(event)

    async def stop(self) -> None:
        """Stop every component; one failing step never skips the ones after it."""
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = []
        if self.server is not None:
            steps.append(("dashboard server", self.server.stop))
        steps += [
            ("retention scheduler", self.scheduler.stop),
            ("usage collector", self.collector.stop),
            ("store", self.store.close),
        ]
        for name, stop in steps:
            try:
                await stop()
            except Exception:
                logger.exception("Failed to stop %s", name)
        logger.info("Metrics pipeline stopped")
