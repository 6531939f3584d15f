"""Lifecycle tests for DashboardServer against a real socket."""

import httpx
import pytest

from gateway_metrics.server import DashboardServer


async def test_serves_on_ephemeral_port_and_stops(store, dashboard_dir):
    server = DashboardServer(store, port=0, dashboard_dir=dashboard_dir)

    await server.start()
    try:
        port = server.actual_port
        assert port > 0
        assert server.running

        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://127.0.0.1:{port}/api/overview")
        assert response.status_code == 200
        assert response.json()["totalTokens"] == 0
    finally:
        await server.stop()

    assert not server.running
    async with httpx.AsyncClient() as client:
        with pytest.raises(httpx.ConnectError):
            await client.get(f"http://127.0.0.1:{port}/api/overview")


async def test_actual_port_requires_start(store):
    server = DashboardServer(store, port=0)
    with pytest.raises(RuntimeError):
        server.actual_port


async def test_busy_port_fails_at_start(store):
    first = DashboardServer(store, port=0)
    await first.start()
    try:
        second = DashboardServer(store, port=first.actual_port)
        with pytest.raises(OSError):
            await second.start()
    finally:
        await first.stop()


async def test_stop_is_safe_when_never_started(store):
    server = DashboardServer(store, port=0)
    await server.stop()
    assert not server.running
