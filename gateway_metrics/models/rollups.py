"""
SQLAlchemy models for rollup (pre-aggregated) tables.

Rollups are maintained incrementally: every raw event write upserts one
hourly and one daily row in the same transaction. They are the only
tables the dashboard reads.

Design notes:
  • Composite primary keys encode the GROUP BY dimensions, making
    INSERT … ON CONFLICT DO UPDATE the natural increment.
  • gateway_id and model default to ''. An event without a gateway or
    model still lands in exactly one bucket.
  • Accumulators only ever grow while the bucket is retained.
"""

from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gateway_metrics.core.database import Base


class HourlyStat(Base):
    """
    Per-hour totals, grouped by (hour, gateway_id, model).

    PK: (hour, gateway_id, model)
    """

    __tablename__ = "hourly_stats"

    hour: Mapped[str] = mapped_column(String, primary_key=True)
    gateway_id: Mapped[str] = mapped_column(
        String, primary_key=True, server_default="",
    )
    model: Mapped[str] = mapped_column(
        String, primary_key=True, server_default="",
    )
    event_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    input_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    output_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    total_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    cost_usd: Mapped[float] = mapped_column(
        Float, nullable=False, server_default="0",
    )


class DailyStat(Base):
    """
    Per-day totals, grouped by (day, gateway_id, model).

    PK: (day, gateway_id, model)
    """

    __tablename__ = "daily_stats"

    day: Mapped[str] = mapped_column(String, primary_key=True)
    gateway_id: Mapped[str] = mapped_column(
        String, primary_key=True, server_default="",
    )
    model: Mapped[str] = mapped_column(
        String, primary_key=True, server_default="",
    )
    event_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    input_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    output_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    total_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    cost_usd: Mapped[float] = mapped_column(
        Float, nullable=False, server_default="0",
    )
