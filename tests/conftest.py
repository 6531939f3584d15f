"""Shared fixtures: a migrated store on a temp file, a frozen clock, an API client."""

import datetime
import sqlite3
from pathlib import Path

import httpx
import pytest

from gateway_metrics.main import create_app
from gateway_metrics.schemas.usage import UsageEvent
from gateway_metrics.services.store import MetricsStore

UTC = datetime.timezone.utc
FIXED_NOW = datetime.datetime(2026, 10, 18, 14, 35, 7, 250000, tzinfo=UTC)


class FrozenClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += datetime.timedelta(**delta)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
async def store(tmp_path, clock):
    store = MetricsStore(tmp_path / "metrics.db", clock=clock)
    await store.migrate()
    yield store
    await store.close()


@pytest.fixture
def make_event():
    """Factory for UsageEvent records stamped at FIXED_NOW unless told otherwise."""

    def _make(ts: datetime.datetime = FIXED_NOW, **fields) -> UsageEvent:
        return UsageEvent(ts=ts, **fields)

    return _make


@pytest.fixture
def raw_db(store):
    """Plain sqlite3 connection for inspecting what the store actually wrote."""
    conn = sqlite3.connect(store.db_path)
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture
def dashboard_dir(tmp_path) -> Path:
    path = tmp_path / "dashboard"
    path.mkdir()
    return path


@pytest.fixture
async def client(store, dashboard_dir):
    app = create_app(store, dashboard_dir)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
