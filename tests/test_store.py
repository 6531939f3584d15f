"""Tests for MetricsStore: schema, atomic fan-out writes, windows, retention."""

import datetime
from collections import defaultdict

import pytest
from sqlalchemy import text

from gateway_metrics.core.config import RetentionConfig
from gateway_metrics.core.errors import StorageError
from gateway_metrics.services import store as store_module
from gateway_metrics.services.store import MetricsStore

from conftest import FIXED_NOW

HOUR = datetime.timedelta(hours=1)
DAY = datetime.timedelta(days=1)


class TestSchema:
    async def test_migrate_is_idempotent(self, store, raw_db):
        await store.migrate()
        await store.migrate()

        versions = raw_db.execute("SELECT version FROM schema_version").fetchall()
        assert [row["version"] for row in versions] == [1]

    async def test_tables_and_indexes_exist(self, store, raw_db):
        names = {
            row["name"]
            for row in raw_db.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")
        }
        assert {"usage_events", "hourly_stats", "daily_stats", "schema_version"} <= names
        assert {"idx_usage_events_ts", "idx_usage_events_gateway", "idx_usage_events_model"} <= names

    async def test_database_uses_wal_journal(self, store, raw_db):
        assert raw_db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    async def test_creates_missing_parent_directories(self, tmp_path):
        store = MetricsStore(tmp_path / "nested" / "dir" / "metrics.db")
        try:
            await store.migrate()
            assert store.db_path.exists()
        finally:
            await store.close()


class TestRecordUsage:
    async def test_raw_row_keeps_absent_fields_null(self, store, raw_db, make_event):
        await store.record_usage(make_event(gateway_id="gw1", total_tokens=42))

        row = raw_db.execute("SELECT * FROM usage_events").fetchone()
        assert row["ts"] == "2026-10-18T14:35:07.250Z"
        assert row["gateway_id"] == "gw1"
        assert row["total_tokens"] == 42
        assert row["model"] is None
        assert row["input_tokens"] is None
        assert row["cost_usd"] is None
        assert row["context_used"] is None

    async def test_rollups_default_absent_values(self, store, make_event):
        await store.record_usage(make_event())

        [row] = await store.get_hourly_stats(1)
        assert row.hour == "2026-10-18T14:00:00Z"
        assert row.gateway_id == ""
        assert row.model == ""
        assert row.event_count == 1
        assert row.total_tokens == 0
        assert row.cost_usd == 0.0

    async def test_same_key_is_incremented_not_overwritten(self, store, make_event):
        await store.record_usage(make_event(gateway_id="g1", model="m1", total_tokens=100))
        await store.record_usage(make_event(gateway_id="g1", model="m1", total_tokens=200))

        [row] = await store.get_hourly_stats(1)
        assert row.total_tokens == 300
        assert row.event_count == 2

    async def test_daily_rollup_accumulates_cost(self, store, make_event):
        await store.record_usage(make_event(gateway_id="g1", model="m2", cost_usd=0.01))
        await store.record_usage(make_event(gateway_id="g1", model="m2", cost_usd=0.02))

        [row] = await store.get_daily_stats(7)
        assert row.day == "2026-10-18"
        assert row.cost_usd == pytest.approx(0.03)
        assert row.event_count == 2

    async def test_hourly_totals_match_raw_events(self, store, raw_db, make_event):
        events = [
            make_event(gateway_id="gw-a", model="opus", total_tokens=100, input_tokens=60),
            make_event(gateway_id="gw-a", model="opus", total_tokens=250),
            make_event(gateway_id="gw-a", model="haiku", total_tokens=7),
            make_event(gateway_id="gw-b", model="opus", total_tokens=30),
            make_event(ts=FIXED_NOW - HOUR, gateway_id="gw-a", model="opus", total_tokens=11),
            make_event(ts=FIXED_NOW - 2 * HOUR, model="opus", total_tokens=5),
            make_event(ts=FIXED_NOW - 2 * HOUR, gateway_id="gw-b"),
        ]
        for event in events:
            await store.record_usage(event)

        expected: dict[tuple[str, str, str], int] = defaultdict(int)
        for row in raw_db.execute("SELECT ts, gateway_id, model, total_tokens FROM usage_events"):
            key = (row["ts"][:13] + ":00:00Z", row["gateway_id"] or "", row["model"] or "")
            expected[key] += row["total_tokens"] or 0

        actual = {
            (row.hour, row.gateway_id, row.model): row.total_tokens
            for row in await store.get_hourly_stats(24)
        }
        assert actual == dict(expected)

    async def test_failed_write_leaves_no_partial_state(self, store, raw_db, make_event, monkeypatch):
        original = store_module._rollup_upsert

        def broken_daily(table, *args):
            if table is store_module.DailyStat:
                return text("INSERT INTO missing_table VALUES (1)")
            return original(table, *args)

        monkeypatch.setattr(store_module, "_rollup_upsert", broken_daily)

        with pytest.raises(StorageError):
            await store.record_usage(make_event(gateway_id="gw1", total_tokens=10))

        assert raw_db.execute("SELECT COUNT(*) FROM usage_events").fetchone()[0] == 0
        assert raw_db.execute("SELECT COUNT(*) FROM hourly_stats").fetchone()[0] == 0
        assert raw_db.execute("SELECT COUNT(*) FROM daily_stats").fetchone()[0] == 0


class TestWindows:
    async def test_hourly_window_includes_cutoff_bucket(self, store, make_event):
        await store.record_usage(make_event(model="now", total_tokens=1))
        await store.record_usage(make_event(ts=FIXED_NOW - HOUR, model="boundary", total_tokens=1))
        await store.record_usage(make_event(ts=FIXED_NOW - 3 * HOUR, model="old", total_tokens=1))

        rows = await store.get_hourly_stats(1)

        assert [r.model for r in rows] == ["boundary", "now"]
        assert [r.hour for r in rows] == ["2026-10-18T13:00:00Z", "2026-10-18T14:00:00Z"]

    async def test_hourly_window_never_returns_older_buckets(self, store, make_event):
        for offset in range(6):
            await store.record_usage(make_event(ts=FIXED_NOW - offset * HOUR, total_tokens=1))

        cutoff = "2026-10-18T11:00:00Z"
        rows = await store.get_hourly_stats(3)
        assert rows and all(r.hour >= cutoff for r in rows)
        assert len(rows) == 4

    async def test_window_is_evaluated_at_call_time(self, store, clock, make_event):
        await store.record_usage(make_event(total_tokens=1))
        assert len(await store.get_hourly_stats(1)) == 1

        clock.advance(hours=3)
        assert await store.get_hourly_stats(1) == []

    async def test_daily_window(self, store, make_event):
        await store.record_usage(make_event(model="today"))
        await store.record_usage(make_event(ts=FIXED_NOW - 7 * DAY, model="boundary"))
        await store.record_usage(make_event(ts=FIXED_NOW - 8 * DAY, model="old"))

        rows = await store.get_daily_stats(7)
        assert [r.model for r in rows] == ["boundary", "today"]


class TestModelDistribution:
    async def test_sums_across_gateways_and_sorts_by_tokens(self, store, make_event):
        await store.record_usage(make_event(gateway_id="g1", model="haiku", total_tokens=50, cost_usd=0.1))
        await store.record_usage(make_event(gateway_id="g1", model="opus", total_tokens=100, cost_usd=0.5))
        await store.record_usage(make_event(gateway_id="g2", model="haiku", total_tokens=70, cost_usd=0.2))

        rows = await store.get_model_distribution(7)

        assert [(r.model, r.total_tokens, r.event_count) for r in rows] == [
            ("haiku", 120, 2),
            ("opus", 100, 1),
        ]
        assert rows[0].cost_usd == pytest.approx(0.3)

    async def test_excludes_events_without_model(self, store, make_event):
        await store.record_usage(make_event(gateway_id="g1", total_tokens=1000))
        await store.record_usage(make_event(gateway_id="g1", model="opus", total_tokens=1))

        rows = await store.get_model_distribution(7)
        assert [r.model for r in rows] == ["opus"]

    async def test_ties_are_ordered_by_model(self, store, make_event):
        for model in ("zeta", "alpha", "mid"):
            await store.record_usage(make_event(model=model, total_tokens=10))

        rows = await store.get_model_distribution(7)
        assert [r.model for r in rows] == ["alpha", "mid", "zeta"]


class TestCleanup:
    retention = RetentionConfig(raw_days=30, hourly_days=90, daily_days=365)

    async def test_noop_when_nothing_is_old(self, store, raw_db, make_event):
        await store.record_usage(make_event(gateway_id="g1", total_tokens=5))

        summary = await store.cleanup_old_data(self.retention)

        assert summary.total == 0
        assert raw_db.execute("SELECT COUNT(*) FROM usage_events").fetchone()[0] == 1
        assert len(await store.get_hourly_stats(1)) == 1

    async def test_noop_on_empty_database(self, store):
        summary = await store.cleanup_old_data(self.retention)
        assert summary.total == 0

    async def test_row_exactly_at_raw_horizon_is_kept(self, store, raw_db, make_event):
        await store.record_usage(make_event(ts=FIXED_NOW - 30 * DAY, model="edge"))

        summary = await store.cleanup_old_data(self.retention)

        assert summary.raw_deleted == 0
        assert raw_db.execute("SELECT COUNT(*) FROM usage_events").fetchone()[0] == 1

    async def test_each_table_uses_its_own_horizon(self, store, raw_db, make_event):
        # Raw row is past 30 days; its hourly bucket sits exactly on the 90-day cutoff.
        await store.record_usage(make_event(ts=FIXED_NOW - 90 * DAY, model="aging"))
        # Past every horizon.
        await store.record_usage(make_event(ts=FIXED_NOW - 400 * DAY, model="ancient"))

        summary = await store.cleanup_old_data(self.retention)

        assert summary.raw_deleted == 2
        assert summary.hourly_deleted == 1
        assert summary.daily_deleted == 1
        hourly = [r[0] for r in raw_db.execute("SELECT model FROM hourly_stats")]
        daily = [r[0] for r in raw_db.execute("SELECT model FROM daily_stats")]
        assert hourly == ["aging"]
        assert daily == ["aging"]

    async def test_unrepresentable_horizon_deletes_nothing_from_that_table(self, store, raw_db, make_event):
        await store.record_usage(make_event(ts=FIXED_NOW - 400 * DAY, model="ancient"))
        keep_forever = RetentionConfig(raw_days=1_000_000_000, hourly_days=90, daily_days=1_000_000)

        summary = await store.cleanup_old_data(keep_forever)

        assert (summary.raw_deleted, summary.hourly_deleted, summary.daily_deleted) == (0, 1, 0)
        assert raw_db.execute("SELECT COUNT(*) FROM usage_events").fetchone()[0] == 1
        assert raw_db.execute("SELECT COUNT(*) FROM daily_stats").fetchone()[0] == 1

    async def test_failed_vacuum_still_reports_deletions(self, store, raw_db, make_event, monkeypatch):
        await store.record_usage(make_event(ts=FIXED_NOW - 400 * DAY, model="ancient"))
        monkeypatch.setattr(store_module, "text", lambda sql: text("VACUUM no_such_schema"))

        with pytest.raises(StorageError):
            await store.vacuum()
        summary = await store.cleanup_old_data(self.retention)

        assert summary.total == 3
        assert raw_db.execute("SELECT COUNT(*) FROM usage_events").fetchone()[0] == 0
