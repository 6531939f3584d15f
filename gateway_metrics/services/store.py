"""
Event store, the single owner of the metrics database.

Writes fan out to three tables per event (raw + hourly + daily rollup)
inside ONE transaction; readers only ever see all three or none.

ATOMIC INCREMENTS:
  Rollups use SQLite's INSERT … ON CONFLICT (pk) DO UPDATE, adding the
  event's values to the stored accumulators. Concurrent writers from
  other gateway processes are serialized by SQLite's write lock, so no
  increment is lost.

WINDOWS:
  "now" comes from the injected clock at call time. A window of N hours
  keeps every bucket whose key is >= the bucket of (now − N hours), so
  the bucket exactly at the cutoff is included.
"""

from __future__ import annotations

import datetime
import logging
import os
from collections.abc import Callable
from typing import Any

from sqlalchemy import delete, func, select, text
from sqlalchemy.dialects.sqlite import Insert, insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from gateway_metrics.core.config import RetentionConfig
from gateway_metrics.core.database import (
    Base,
    create_engine,
    create_session_factory,
    expand_db_path,
)
from gateway_metrics.core.errors import StorageError
from gateway_metrics.core.timebuckets import day_bucket, hour_bucket, to_iso, utcnow
from gateway_metrics.models.rollups import DailyStat, HourlyStat
from gateway_metrics.models.usage import SCHEMA_VERSION, SchemaVersion, UsageEventRow
from gateway_metrics.schemas.stats import (
    CleanupSummary,
    DailyStatRow,
    HourlyStatRow,
    ModelUsageRow,
)
from gateway_metrics.schemas.usage import UsageEvent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


class MetricsStore:
    """Persistent usage store backed by one SQLite file."""

    def __init__(
        self,
        db_path: str | os.PathLike[str],
        clock: Clock = utcnow,
        echo: bool = False,
    ) -> None:
        self.db_path = expand_db_path(db_path)
        self._clock = clock
        self._engine = create_engine(self.db_path, echo=echo)
        self._session_factory = create_session_factory(self._engine)

    # ── Lifecycle ───────────────────────────────────────────
    async def migrate(self) -> None:
        """
        Create tables/indexes if absent and record the schema version.

        Idempotent; every gateway process calls this on startup.
        """
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                await conn.execute(
                    sqlite_insert(SchemaVersion)
                    .values(version=SCHEMA_VERSION, applied_at=to_iso(self._clock()))
                    .on_conflict_do_nothing(index_elements=["version"])
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Schema migration failed: {exc}") from exc
        logger.info("Metrics store ready at %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    async def close(self) -> None:
        await self._engine.dispose()

    # ── Writes ──────────────────────────────────────────────
    async def record_usage(self, event: UsageEvent) -> None:
        """
        Persist one event: raw insert + hourly upsert + daily upsert.

        All three statements commit together or not at all.

        Raises:
            StorageError: if any statement fails (the transaction is rolled back).
        """
        gateway_id, model = event.rollup_key
        values = event.rollup_values()

        try:
            async with self._session_factory() as session, session.begin():
                session.add(_raw_row(event))
                await session.execute(
                    _rollup_upsert(HourlyStat, "hour", hour_bucket(event.ts), gateway_id, model, values)
                )
                await session.execute(
                    _rollup_upsert(DailyStat, "day", day_bucket(event.ts), gateway_id, model, values)
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record usage event: {exc}") from exc

    # ── Reads ───────────────────────────────────────────────
    async def get_hourly_stats(self, hours: int) -> list[HourlyStatRow]:
        """Hourly rollups within the trailing window, oldest bucket first."""
        cutoff = hour_bucket(self._clock() - datetime.timedelta(hours=hours))
        stmt = (
            select(HourlyStat)
            .where(HourlyStat.hour >= cutoff)
            .order_by(HourlyStat.hour.asc(), HourlyStat.gateway_id, HourlyStat.model)
        )
        rows = await self._scalars(stmt)
        return [HourlyStatRow.model_validate(row) for row in rows]

    async def get_daily_stats(self, days: int) -> list[DailyStatRow]:
        """Daily rollups within the trailing window, oldest bucket first."""
        cutoff = day_bucket(self._clock() - datetime.timedelta(days=days))
        stmt = (
            select(DailyStat)
            .where(DailyStat.day >= cutoff)
            .order_by(DailyStat.day.asc(), DailyStat.gateway_id, DailyStat.model)
        )
        rows = await self._scalars(stmt)
        return [DailyStatRow.model_validate(row) for row in rows]

    async def get_model_distribution(self, days: int) -> list[ModelUsageRow]:
        """
        Per-model totals across all gateways, largest token count first.

        Rollups without a model ('' key) are excluded.
        """
        cutoff = day_bucket(self._clock() - datetime.timedelta(days=days))
        total_tokens = func.sum(DailyStat.total_tokens).label("total_tokens")
        stmt = (
            select(
                DailyStat.model,
                func.sum(DailyStat.event_count).label("event_count"),
                total_tokens,
                func.sum(DailyStat.cost_usd).label("cost_usd"),
            )
            .where(DailyStat.day >= cutoff, DailyStat.model != "")
            .group_by(DailyStat.model)
            .order_by(total_tokens.desc(), DailyStat.model.asc())
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Model distribution query failed: {exc}") from exc
        return [ModelUsageRow.model_validate(row) for row in rows]

    # ── Retention ───────────────────────────────────────────
    async def cleanup_old_data(self, retention: RetentionConfig) -> CleanupSummary:
        """
        Delete rows strictly older than each table's horizon, then VACUUM.

        Rows exactly at a horizon are kept. Deleting nothing is not an error.
        A horizon reaching past the earliest representable date deletes
        nothing from its table. A failed VACUUM is logged; the rows are
        already gone, so the summary is still returned.
        """
        now = self._clock()
        raw_cutoff = _cutoff(now, retention.raw_days, to_iso)
        hourly_cutoff = _cutoff(now, retention.hourly_days, hour_bucket)
        daily_cutoff = _cutoff(now, retention.daily_days, day_bucket)

        try:
            async with self._session_factory() as session, session.begin():
                raw_deleted = await _delete_older(session, UsageEventRow.ts, raw_cutoff)
                hourly_deleted = await _delete_older(session, HourlyStat.hour, hourly_cutoff)
                daily_deleted = await _delete_older(session, DailyStat.day, daily_cutoff)
        except SQLAlchemyError as exc:
            raise StorageError(f"Retention cleanup failed: {exc}") from exc

        summary = CleanupSummary(
            raw_deleted=raw_deleted,
            hourly_deleted=hourly_deleted,
            daily_deleted=daily_deleted,
        )
        logger.info(
            "Retention cleanup removed %d raw, %d hourly, %d daily rows",
            summary.raw_deleted, summary.hourly_deleted, summary.daily_deleted,
        )

        try:
            await self.vacuum()
        except StorageError:
            logger.warning("VACUUM after retention cleanup failed", exc_info=True)
        return summary

    async def vacuum(self) -> None:
        """Reclaim free pages. Fails with SQLITE_BUSY while another reader is active."""
        # VACUUM cannot run inside a transaction.
        autocommit = self._engine.execution_options(isolation_level="AUTOCOMMIT")
        try:
            async with autocommit.connect() as conn:
                await conn.execute(text("VACUUM"))
        except SQLAlchemyError as exc:
            raise StorageError(f"VACUUM failed: {exc}") from exc

    # ── Helpers ─────────────────────────────────────────────
    async def _scalars(self, stmt: Any) -> list[Any]:
        try:
            async with self._session_factory() as session:
                return list((await session.scalars(stmt)).all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Rollup query failed: {exc}") from exc


def _raw_row(event: UsageEvent) -> UsageEventRow:
    """Build the ORM row; absent fields stay None (NULL)."""
    return UsageEventRow(
        ts=to_iso(event.ts),
        gateway_id=event.gateway_id,
        channel=event.channel,
        provider=event.provider,
        model=event.model,
        session_key=event.session_key,
        session_id=event.session_id,
        input_tokens=event.input_tokens,
        output_tokens=event.output_tokens,
        cache_read_tokens=event.cache_read_tokens,
        cache_write_tokens=event.cache_write_tokens,
        prompt_tokens=event.prompt_tokens,
        total_tokens=event.total_tokens,
        cost_usd=event.cost_usd,
        duration_ms=event.duration_ms,
        context_limit=event.context_limit,
        context_used=event.context_used,
    )


def _rollup_upsert(
    table: type[HourlyStat] | type[DailyStat],
    bucket_column: str,
    bucket: str,
    gateway_id: str,
    model: str,
    values: dict[str, Any],
) -> Insert:
    """INSERT a fresh bucket with count 1, or add to the existing one."""
    stmt = sqlite_insert(table).values(
        {
            bucket_column: bucket,
            "gateway_id": gateway_id,
            "model": model,
            "event_count": 1,
            **values,
        }
    )
    return stmt.on_conflict_do_update(
        index_elements=[bucket_column, "gateway_id", "model"],
        set_={
            "event_count": table.event_count + 1,
            "input_tokens": table.input_tokens + stmt.excluded.input_tokens,
            "output_tokens": table.output_tokens + stmt.excluded.output_tokens,
            "total_tokens": table.total_tokens + stmt.excluded.total_tokens,
            "cost_usd": table.cost_usd + stmt.excluded.cost_usd,
        },
    )


def _cutoff(
    now: datetime.datetime,
    days: int,
    bucket: Callable[[datetime.datetime], str],
) -> str | None:
    """Bucket key of ``now - days``, or None if that date is not representable."""
    try:
        return bucket(now - datetime.timedelta(days=days))
    except OverflowError:
        return None


async def _delete_older(
    session: AsyncSession,
    column: InstrumentedAttribute[str],
    cutoff: str | None,
) -> int:
    """Delete rows whose bucket/ts sorts before ``cutoff``; None deletes nothing."""
    if cutoff is None:
        return 0
    result = await session.execute(delete(column.class_).where(column < cutoff))
    return result.rowcount or 0
