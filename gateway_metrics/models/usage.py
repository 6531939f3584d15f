"""
SQLAlchemy models for the raw `usage_events` table and the schema marker.

Each usage_events row is one LLM call observed by a gateway. Rows are
append-only: written once at flush time, removed only by retention cleanup.

Design notes:
  • Descriptive and numeric columns are nullable; an absent field is
    stored as NULL, never as a fabricated 0 or "".
  • ts is TEXT in fixed-width ISO form so range predicates sort correctly.
  • Indexes on ts, gateway_id, model support the retention delete and
    ad-hoc inspection.
"""

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gateway_metrics.core.database import Base

SCHEMA_VERSION = 1


class UsageEventRow(Base):
    """One LLM call, exactly as reported."""

    __tablename__ = "usage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[str] = mapped_column(String, nullable=False)

    # ── Dimensions ──────────────────────────────────────────
    gateway_id: Mapped[str | None] = mapped_column(String)
    channel: Mapped[str | None] = mapped_column(String)
    provider: Mapped[str | None] = mapped_column(String)
    model: Mapped[str | None] = mapped_column(String)
    session_key: Mapped[str | None] = mapped_column(String)
    session_id: Mapped[str | None] = mapped_column(String)

    # ── Token counts ────────────────────────────────────────
    input_tokens: Mapped[int | None] = mapped_column(Integer)
    output_tokens: Mapped[int | None] = mapped_column(Integer)
    cache_read_tokens: Mapped[int | None] = mapped_column(Integer)
    cache_write_tokens: Mapped[int | None] = mapped_column(Integer)
    prompt_tokens: Mapped[int | None] = mapped_column(Integer)
    total_tokens: Mapped[int | None] = mapped_column(Integer)

    # ── Cost / timing / context window ──────────────────────
    cost_usd: Mapped[float | None] = mapped_column(Float)
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    context_limit: Mapped[int | None] = mapped_column(Integer)
    context_used: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        Index("idx_usage_events_ts", "ts"),
        Index("idx_usage_events_gateway", "gateway_id"),
        Index("idx_usage_events_model", "model"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<UsageEventRow id={self.id} ts={self.ts} "
            f"gateway={self.gateway_id} model={self.model}>"
        )


class SchemaVersion(Base):
    """Single-row marker recording which schema version has been applied."""

    __tablename__ = "schema_version"

    version: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    applied_at: Mapped[str] = mapped_column(String, nullable=False)
