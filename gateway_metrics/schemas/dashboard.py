"""
Pydantic v2 response schemas for the dashboard API.

The JSON field names are a compatibility surface for a deployed frontend,
so they are pinned with camelCase aliases. FastAPI serializes
response_model by alias, which produces exactly these keys.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RankedUsage(_CamelModel):
    """One entry of a top-N ranking (gateways or models)."""

    id: str
    total_tokens: int
    total_cost: float


class OverviewOut(_CamelModel):
    total_tokens: int
    total_cost: float
    total_events: int
    input_tokens: int
    output_tokens: int
    top_gateways: list[RankedUsage]
    top_models: list[RankedUsage]


class TimeseriesPoint(_CamelModel):
    timestamp: str
    tokens: int
    cost: float


class GatewaySummary(_CamelModel):
    id: str
    total_tokens_24h: int = Field(alias="totalTokens24h")
    total_cost_24h: float = Field(alias="totalCost24h")
    top_model: str | None


class GatewayStats(_CamelModel):
    total_tokens: int
    total_cost: float
    total_events: int


class GatewayHourlyPoint(_CamelModel):
    timestamp: str
    tokens: int
    cost: float
    events: int
    model: str


class GatewayDetail(_CamelModel):
    id: str
    stats: GatewayStats
    hourly: list[GatewayHourlyPoint]
    # Reserved for a per-session breakdown; always empty for now.
    sessions: list[Any] = Field(default_factory=list)


class ModelSummary(_CamelModel):
    id: str
    provider: str
    total_tokens: int
    total_cost: float
    avg_cost_per_1k: float = Field(alias="avgCostPer1K")
