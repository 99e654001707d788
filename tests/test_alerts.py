"""
Unit tests for alert evaluation and the alert transition tracker.
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from configs.settings import AlertThresholds
from services.monitor_service.alerts import AlertTracker, evaluate_alerts
from services.monitor_service.models import AlertFlags
from services.monitor_service.system import Capabilities


class TestEvaluateAlerts:
    def test_defaults_all_clear(self):
        flags = evaluate_alerts(AlertThresholds())
        assert flags == AlertFlags()

    def test_threshold_is_strict(self):
        t = AlertThresholds()
        assert evaluate_alerts(t, cpu=80.0).cpu is False
        assert evaluate_alerts(t, cpu=80.1).cpu is True

    def test_each_metric(self):
        flags = evaluate_alerts(
            AlertThresholds(),
            cpu=95,
            memory=91,
            response_time=501,
            error_rate=5.5,
            event_loop_lag=150,
        )
        assert flags == AlertFlags(
            cpu=True, memory=True, response_time=True, error_rate=True, event_loop_lag=True
        )

    def test_custom_thresholds(self):
        t = AlertThresholds(response_time_ms=100)
        assert evaluate_alerts(t, response_time=150).response_time is True

    def test_reduced_capability_never_fires_unavailable(self):
        flags = evaluate_alerts(
            AlertThresholds(),
            cpu=99,
            memory=99,
            event_loop_lag=999,
            response_time=900,
            error_rate=50,
            capabilities=Capabilities.reduced(),
        )
        assert flags.cpu is False
        assert flags.memory is False
        assert flags.event_loop_lag is False
        # Request-derived metrics are always available.
        assert flags.response_time is True
        assert flags.error_rate is True


class TestAlertTracker:
    def test_reports_rising_edge_once(self):
        tracker = AlertTracker()
        on = AlertFlags(cpu=True)
        assert tracker.observe(on, {"cpu": 95}) == ["cpu"]
        assert tracker.observe(on, {"cpu": 96}) == []

    def test_reraises_after_clearing(self):
        tracker = AlertTracker()
        tracker.observe(AlertFlags(error_rate=True), {})
        tracker.observe(AlertFlags(), {})
        assert tracker.observe(AlertFlags(error_rate=True), {}) == ["error_rate"]
