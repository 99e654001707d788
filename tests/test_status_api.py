"""
Integration tests for the FastAPI adapter — middleware tracking, the
status endpoints, lifespan wiring and settings loading.
"""
import os
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from configs.settings import MonitorSettings
from services.api_gateway.app import attach_status_monitor, create_app
from services.monitor_service.monitor import StatusMonitor


def _settings(**overrides) -> MonitorSettings:
    return MonitorSettings(cluster_mode=False, reduced_mode=True, **overrides)


def _app(monitor: StatusMonitor) -> FastAPI:
    app = FastAPI()
    attach_status_monitor(app, monitor)

    @app.get("/api/items/{item_id}")
    async def get_item(item_id: int):
        return {"id": item_id}

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("boom")

    return app


@pytest.fixture()
def monitor() -> StatusMonitor:
    return StatusMonitor(_settings())


class TestMiddleware:
    def test_requests_tracked(self, monitor):
        client = TestClient(_app(monitor))
        assert client.get("/api/items/42").status_code == 200
        assert client.get("/api/items/7").status_code == 200
        assert monitor.counters.total_requests == 2
        route = monitor.routes.routes[0]
        assert route.path == "/api/items/:id"
        assert route.method == "GET"
        assert route.count == 2

    def test_not_found_counts_as_error(self, monitor):
        client = TestClient(_app(monitor))
        assert client.get("/nope").status_code == 404
        assert monitor.counters.status_codes == {"404": 1}
        assert monitor.routes.total_errors == 1

    def test_handler_exception_recorded_as_500(self, monitor):
        client = TestClient(_app(monitor), raise_server_exceptions=False)
        assert client.get("/api/boom").status_code == 500
        assert monitor.counters.status_codes == {"500": 1}
        assert monitor.counters.active_connections == 0

    def test_status_path_not_tracked(self, monitor):
        client = TestClient(_app(monitor))
        client.get("/status/api/metrics")
        assert monitor.counters.total_requests == 0


class TestStatusEndpoints:
    def test_metrics_payload(self, monitor):
        client = TestClient(_app(monitor))
        for _ in range(3):
            client.get("/api/items/1")
        body = client.get("/status/api/metrics").json()
        assert body["title"] == "Server Status"
        assert body["uptime_human"].endswith("s")
        snap = body["snapshot"]
        assert snap["totalRequests"] == 3
        assert snap["statusCodes"] == {"200": 3}
        assert snap["topRoutes"][0]["path"] == "/api/items/:id"
        assert snap["topRoutes"][0]["count"] == 3
        assert snap["reducedMode"] is True
        assert set(body["charts"]) >= {"cpu", "rps", "response_time"}

    def test_unfinished_route_min_time_renders_as_zero(self, monitor):
        monitor.on_request_start("/api/pending", "GET")
        client = TestClient(_app(monitor))
        snap = client.get("/status/api/metrics").json()["snapshot"]
        pending = [r for r in snap["topRoutes"] if r["path"] == "/api/pending"][0]
        assert pending["minTime"] == 0

    def test_custom_mount_path(self):
        monitor = StatusMonitor(_settings(path="/_monitor", title="Edge"))
        client = TestClient(_app(monitor))
        body = client.get("/_monitor/api/metrics").json()
        assert body["title"] == "Edge"

    def test_health_endpoint(self):
        async def probe():
            return {"connected": True, "latency_ms": 3.0, "name": "redis"}

        monitor = StatusMonitor(_settings(), health_probe=probe)
        body = TestClient(_app(monitor)).get("/status/api/health").json()
        assert body["connected"] is True
        assert body["latencyMs"] == 3.0
        assert body["name"] == "redis"


class TestLifespan:
    def test_timer_follows_app_lifespan(self, monitor):
        app = create_app(monitor, _settings())
        with TestClient(app) as client:
            assert monitor.is_running
            assert client.get("/status/api/metrics").status_code == 200
        assert not monitor.is_running


class TestSettings:
    def test_defaults(self):
        cfg = MonitorSettings()
        assert cfg.update_interval_ms == 1000
        assert cfg.retention_seconds == 60
        assert cfg.max_recent_errors == 10
        assert cfg.max_routes == 10
        assert cfg.worker_timeout_ms == 10_000
        assert cfg.alerts.cpu == 80
        assert cfg.alerts.memory == 90
        assert cfg.alerts.response_time_ms == 500
        assert cfg.alerts.error_rate_pct == 5
        assert cfg.alerts.event_loop_lag_ms == 100

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("STATUS_MONITOR_UPDATE_INTERVAL_MS", "250")
        monkeypatch.setenv("STATUS_MONITOR_ALERTS__CPU", "70")
        cfg = MonitorSettings()
        assert cfg.update_interval_ms == 250
        assert cfg.alerts.cpu == 70
