"""
Ingestion buffer between the gateway's diagnostic bus and the store.

The producer must never be slowed down or broken by metrics:
  • record() drops anything that is not a usage event and never raises.
  • Events are buffered in memory and written in batches.
  • A failed write is logged and skipped; the rest of the batch goes on.

Flush triggers:
  1. size: the buffer reached BUFFER_SIZE; flushed inline in record().
  2. time: the background task flushes every FLUSH_INTERVAL_SECONDS.
  3. explicit: flush(), request_flush(), or stop() on shutdown.

The background task owns no state of its own: it receives FLUSH/STOP
commands on a queue (or times out waiting for one) and calls flush().
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from gateway_metrics.core.timebuckets import utcnow
from gateway_metrics.schemas.usage import DiagnosticEvent, UsageEvent
from gateway_metrics.services.store import Clock, MetricsStore

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL_SECONDS = 5.0
DEFAULT_BUFFER_SIZE = 100


class _Command(enum.Enum):
    FLUSH = "flush"
    STOP = "stop"


class UsageCollector:
    """Buffers usage events for one gateway and flushes them to the store."""

    def __init__(
        self,
        store: MetricsStore,
        gateway_id: str,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.gateway_id = gateway_id
        self.flush_interval = flush_interval
        self.buffer_size = buffer_size
        self._clock = clock
        self._buffer: list[UsageEvent] = []
        self._commands: asyncio.Queue[_Command] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        """Number of events waiting for the next flush."""
        return len(self._buffer)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Producer side ───────────────────────────────────────
    async def record(self, event: DiagnosticEvent | Mapping[str, Any]) -> bool:
        """
        Buffer one diagnostic event.

        Returns True if the event was a usage event and was buffered,
        False if it was ignored.
        """
        if not isinstance(event, DiagnosticEvent):
            try:
                event = DiagnosticEvent.model_validate(event)
            except ValidationError:
                logger.debug("Dropping malformed diagnostic event")
                return False

        if not event.is_usage:
            return False

        self._buffer.append(
            UsageEvent.from_diagnostic(event, gateway_id=self.gateway_id, ts=self._clock())
        )

        if len(self._buffer) >= self.buffer_size:
            await self.flush()
        return True

    def request_flush(self) -> None:
        """Ask the background task to flush soon. Safe from sync code."""
        if self._commands is not None:
            self._commands.put_nowait(_Command.FLUSH)

    # ── Flushing ────────────────────────────────────────────
    async def flush(self) -> int:
        """
        Write everything buffered so far; return how many events were stored.

        The buffer is swapped out before the first await, so events
        recorded while this batch is being written wait for the next flush.
        """
        if not self._buffer:
            return 0
        batch, self._buffer = self._buffer, []

        written = 0
        for event in batch:
            try:
                await self.store.record_usage(event)
                written += 1
            except Exception:
                logger.warning(
                    "Dropping usage event for gateway=%s model=%s",
                    event.gateway_id, event.model,
                    exc_info=True,
                )
        if written < len(batch):
            logger.warning("Flushed %d of %d usage events", written, len(batch))
        else:
            logger.debug("Flushed %d usage events", written)
        return written

    # ── Background task ─────────────────────────────────────
    def start(self) -> None:
        """Start the periodic flush task on the running event loop."""
        if self.running:
            return
        self._commands = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name=f"usage-collector:{self.gateway_id}")

    async def stop(self) -> None:
        """Stop the periodic task and flush whatever is left."""
        if self._task is not None and self._commands is not None:
            self._commands.put_nowait(_Command.STOP)
            await self._task
        self._task = None
        self._commands = None
        await self.flush()

    async def _run(self) -> None:
        assert self._commands is not None
        while True:
            try:
                command = await asyncio.wait_for(self._commands.get(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                command = _Command.FLUSH

            if command is _Command.STOP:
                return
            try:
                await self.flush()
            except Exception:
                logger.exception("Periodic flush failed")
