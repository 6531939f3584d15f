"""
Daily retention cleanup, scheduled at a fixed UTC hour.

The first run happens at the next occurrence of CLEANUP_HOUR_UTC (today
if the hour is still ahead, otherwise tomorrow); later runs follow every
24 hours. The schedule runs as its own task and is independent of
ingestion and query traffic. A failed run is logged; the next one still
happens.
"""

from __future__ import annotations

import asyncio
import datetime
import logging

from gateway_metrics.core.config import RetentionConfig
from gateway_metrics.core.timebuckets import as_utc, utcnow
from gateway_metrics.schemas.stats import CleanupSummary
from gateway_metrics.services.store import Clock, MetricsStore

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_HOUR_UTC = 4
_DAY = datetime.timedelta(days=1)


def next_run_at(now: datetime.datetime, hour_utc: int) -> datetime.datetime:
    """The next instant at ``hour_utc:00`` UTC that is not in the past."""
    now = as_utc(now)
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target < now:
        target += _DAY
    return target


class RetentionScheduler:
    """Runs MetricsStore.cleanup_old_data once a day."""

    def __init__(
        self,
        store: MetricsStore,
        retention: RetentionConfig,
        hour_utc: int = DEFAULT_CLEANUP_HOUR_UTC,
        clock: Clock = utcnow,
    ) -> None:
        if not 0 <= hour_utc <= 23:
            raise ValueError(f"hour_utc must be within 0-23, got {hour_utc}")
        self.store = store
        self.retention = retention
        self.hour_utc = hour_utc
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="retention-cleanup")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Retention schedule had already failed")
        self._task = None

    async def run_once(self) -> CleanupSummary | None:
        """One cleanup pass. Returns None if it failed; the failure is logged."""
        try:
            return await self.store.cleanup_old_data(self.retention)
        except Exception:
            logger.exception("Retention cleanup failed")
            return None

    async def _run(self) -> None:
        now = self._clock()
        first = next_run_at(now, self.hour_utc)
        logger.info("Next retention cleanup scheduled for %s", first.isoformat())
        await asyncio.sleep((first - as_utc(now)).total_seconds())
        while True:
            await self.run_once()
            await asyncio.sleep(_DAY.total_seconds())
