"""
Dashboard aggregations derived from the rollup tables.

Nothing here is stored: every response is rebuilt from hourly/daily rows
on request. Rankings are deterministic: descending by tokens, ties
broken by ascending id.
"""

from __future__ import annotations

from collections import defaultdict

from gateway_metrics.schemas.dashboard import (
    GatewayDetail,
    GatewayHourlyPoint,
    GatewayStats,
    GatewaySummary,
    ModelSummary,
    OverviewOut,
    RankedUsage,
    TimeseriesPoint,
)
from gateway_metrics.services.store import MetricsStore

_TOP_N = 10
_GATEWAYS_WINDOW_HOURS = 24

# Ordered: the first provider with a matching substring wins.
_PROVIDER_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("anthropic", ("claude",)),
    ("openai", ("gpt", "o1", "o3")),
    ("moonshot", ("kimi", "moonshot")),
    ("zhipu", ("glm",)),
    ("minimax", ("minimax",)),
)


def infer_provider(model: str) -> str:
    """Best-effort provider tag for a model identifier."""
    if not model:
        return "unknown"
    for provider, needles in _PROVIDER_PATTERNS:
        if any(needle in model for needle in needles):
            return provider
    return "unknown"


class _Totals:
    __slots__ = ("tokens", "cost")

    def __init__(self) -> None:
        self.tokens = 0
        self.cost = 0.0

    def add(self, tokens: int, cost: float) -> None:
        self.tokens += tokens
        self.cost += cost


def _ranked(totals: dict[str, _Totals], limit: int | None = None) -> list[tuple[str, _Totals]]:
    ordered = sorted(totals.items(), key=lambda item: (-item[1].tokens, item[0]))
    return ordered if limit is None else ordered[:limit]


# ── /api/overview ───────────────────────────────────────────
async def build_overview(store: MetricsStore, hours: int) -> OverviewOut:
    rows = await store.get_hourly_stats(hours)

    total_tokens = total_events = input_tokens = output_tokens = 0
    total_cost = 0.0
    by_gateway: dict[str, _Totals] = defaultdict(_Totals)
    by_model: dict[str, _Totals] = defaultdict(_Totals)

    for row in rows:
        total_tokens += row.total_tokens
        total_cost += row.cost_usd
        total_events += row.event_count
        input_tokens += row.input_tokens
        output_tokens += row.output_tokens
        if row.gateway_id:
            by_gateway[row.gateway_id].add(row.total_tokens, row.cost_usd)
        if row.model:
            by_model[row.model].add(row.total_tokens, row.cost_usd)

    return OverviewOut(
        total_tokens=total_tokens,
        total_cost=total_cost,
        total_events=total_events,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        top_gateways=[
            RankedUsage(id=key, total_tokens=t.tokens, total_cost=t.cost)
            for key, t in _ranked(by_gateway, _TOP_N)
        ],
        top_models=[
            RankedUsage(id=key, total_tokens=t.tokens, total_cost=t.cost)
            for key, t in _ranked(by_model, _TOP_N)
        ],
    )


# ── /api/timeseries ─────────────────────────────────────────
async def build_timeseries(
    store: MetricsStore,
    hours: int,
    gateway: str | None = None,
    model: str | None = None,
) -> list[TimeseriesPoint]:
    """
    Token/cost totals per hour, collapsing gateway and model.

    An empty filter value means "no filter".
    """
    rows = await store.get_hourly_stats(hours)
    per_hour: dict[str, _Totals] = defaultdict(_Totals)

    for row in rows:
        if gateway and row.gateway_id != gateway:
            continue
        if model and row.model != model:
            continue
        per_hour[row.hour].add(row.total_tokens, row.cost_usd)

    return [
        TimeseriesPoint(timestamp=hour, tokens=t.tokens, cost=t.cost)
        for hour, t in sorted(per_hour.items())
    ]


# ── /api/gateways ───────────────────────────────────────────
async def build_gateways(store: MetricsStore) -> list[GatewaySummary]:
    """Last-24h totals per gateway with each gateway's busiest model."""
    rows = await store.get_hourly_stats(_GATEWAYS_WINDOW_HOURS)
    totals: dict[str, _Totals] = defaultdict(_Totals)
    model_tokens: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for row in rows:
        if not row.gateway_id:
            continue
        totals[row.gateway_id].add(row.total_tokens, row.cost_usd)
        if row.model:
            model_tokens[row.gateway_id][row.model] += row.total_tokens

    summaries = []
    for gateway_id, t in _ranked(totals):
        models = model_tokens.get(gateway_id)
        top_model = (
            min(models.items(), key=lambda item: (-item[1], item[0]))[0]
            if models else None
        )
        summaries.append(
            GatewaySummary(
                id=gateway_id,
                total_tokens_24h=t.tokens,
                total_cost_24h=t.cost,
                top_model=top_model,
            )
        )
    return summaries


# ── /api/gateway/{id} ───────────────────────────────────────
async def build_gateway(store: MetricsStore, gateway_id: str, hours: int) -> GatewayDetail:
    rows = [r for r in await store.get_hourly_stats(hours) if r.gateway_id == gateway_id]

    return GatewayDetail(
        id=gateway_id,
        stats=GatewayStats(
            total_tokens=sum(r.total_tokens for r in rows),
            total_cost=sum((r.cost_usd for r in rows), 0.0),
            total_events=sum(r.event_count for r in rows),
        ),
        hourly=[
            GatewayHourlyPoint(
                timestamp=r.hour,
                tokens=r.total_tokens,
                cost=r.cost_usd,
                events=r.event_count,
                model=r.model,
            )
            for r in rows
        ],
        sessions=[],
    )


# ── /api/models ─────────────────────────────────────────────
async def build_models(store: MetricsStore, days: int) -> list[ModelSummary]:
    rows = await store.get_model_distribution(days)
    return [
        ModelSummary(
            id=r.model,
            provider=infer_provider(r.model),
            total_tokens=r.total_tokens,
            total_cost=r.cost_usd,
            avg_cost_per_1k=(r.cost_usd / r.total_tokens * 1000) if r.total_tokens > 0 else 0.0,
        )
        for r in rows
    ]
