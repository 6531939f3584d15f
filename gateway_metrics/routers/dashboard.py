"""
Dashboard API router: read-only aggregations over the rollup tables.

Endpoints:
  GET /api/overview          totals + top gateways/models
  GET /api/timeseries        tokens/cost per hour, optional filters
  GET /api/gateways          last-24h summary per gateway
  GET /api/gateway/{id}      one gateway's stats and hourly series
  GET /api/models            per-model distribution

Every endpoint also answers HEAD.

Query parameters are never rejected: unparseable values fall back to the
default and numbers are clamped into range. Any failure while building a
response becomes a 500 with {"error": <message>}.
"""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from gateway_metrics.core.errors import APIError, NotFoundError
from gateway_metrics.schemas.dashboard import (
    GatewayDetail,
    GatewaySummary,
    ModelSummary,
    OverviewOut,
    TimeseriesPoint,
)
from gateway_metrics.services import aggregations
from gateway_metrics.services.store import MetricsStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Dashboard"])

# ── Parameter bounds ────────────────────────────────────────
DEFAULT_HOURS, MIN_HOURS, MAX_HOURS = 24, 1, 24 * 30
DEFAULT_DAYS, MIN_DAYS, MAX_DAYS = 7, 1, 365

READ_METHODS = ["GET", "HEAD"]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def clamp_int(value: str | None, default: int, low: int, high: int) -> int:
    """Parse a leading integer, fall back to ``default``, clamp into range."""
    if value is None:
        return default
    match = _LEADING_INT.match(value)
    if match is None:
        return default
    return max(low, min(high, int(match.group(1))))


def get_store(request: Request) -> MetricsStore:
    return request.app.state.store


Store = Annotated[MetricsStore, Depends(get_store)]


@contextmanager
def _as_api_errors(route: str) -> Iterator[None]:
    try:
        yield
    except APIError:
        raise
    except Exception as exc:
        logger.exception("API error on %s", route)
        raise APIError(str(exc) or None) from exc


# ── Routes ──────────────────────────────────────────────────
@router.api_route(
    "/overview",
    methods=READ_METHODS,
    response_model=OverviewOut,
    summary="Totals and top-N rankings",
)
async def get_overview(store: Store, hours: str | None = None) -> OverviewOut:
    with _as_api_errors("/api/overview"):
        return await aggregations.build_overview(
            store, clamp_int(hours, DEFAULT_HOURS, MIN_HOURS, MAX_HOURS),
        )


@router.api_route(
    "/timeseries",
    methods=READ_METHODS,
    response_model=list[TimeseriesPoint],
    summary="Hourly token and cost series",
)
async def get_timeseries(
    store: Store,
    hours: str | None = None,
    gateway: str | None = None,
    model: str | None = None,
) -> list[TimeseriesPoint]:
    with _as_api_errors("/api/timeseries"):
        return await aggregations.build_timeseries(
            store,
            clamp_int(hours, DEFAULT_HOURS, MIN_HOURS, MAX_HOURS),
            gateway=gateway,
            model=model,
        )


@router.api_route(
    "/gateways",
    methods=READ_METHODS,
    response_model=list[GatewaySummary],
    summary="Last-24h usage per gateway",
)
async def get_gateways(store: Store) -> list[GatewaySummary]:
    with _as_api_errors("/api/gateways"):
        return await aggregations.build_gateways(store)


@router.api_route(
    "/gateway/{gateway_id}",
    methods=READ_METHODS,
    response_model=GatewayDetail,
    summary="Stats and hourly series for one gateway",
)
async def get_gateway(store: Store, gateway_id: str, hours: str | None = None) -> GatewayDetail:
    with _as_api_errors("/api/gateway"):
        return await aggregations.build_gateway(
            store, gateway_id, clamp_int(hours, DEFAULT_HOURS, MIN_HOURS, MAX_HOURS),
        )


@router.api_route(
    "/models",
    methods=READ_METHODS,
    response_model=list[ModelSummary],
    summary="Per-model usage distribution",
)
async def get_models(store: Store, days: str | None = None) -> list[ModelSummary]:
    with _as_api_errors("/api/models"):
        return await aggregations.build_models(
            store, clamp_int(days, DEFAULT_DAYS, MIN_DAYS, MAX_DAYS),
        )


# Registered last: anything else under /api/ is a 404, never a static file.
@router.api_route(
    "/{unknown:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def unknown_route(unknown: str) -> None:
    raise NotFoundError()
