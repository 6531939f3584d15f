"""
Pydantic v2 schemas for rows read back from the store.

All schemas use from_attributes=True so ORM objects and SQLAlchemy Row
objects returned by select() map directly without manual conversion.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class HourlyStatRow(BaseModel):
    """One hourly_stats row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    hour: str
    gateway_id: str
    model: str
    event_count: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: float


class DailyStatRow(BaseModel):
    """One daily_stats row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    day: str
    gateway_id: str
    model: str
    event_count: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: float


class ModelUsageRow(BaseModel):
    """Daily rollups summed across gateways for a single model."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    model: str
    event_count: int
    total_tokens: int
    cost_usd: float


class CleanupSummary(BaseModel):
    """Rows removed by one retention pass."""

    raw_deleted: int = 0
    hourly_deleted: int = 0
    daily_deleted: int = 0

    @property
    def total(self) -> int:
        return self.raw_deleted + self.hourly_deleted + self.daily_deleted
