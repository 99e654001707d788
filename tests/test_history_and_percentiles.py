"""
Unit tests for the rolling history store and the percentile estimator.
"""
import os
import random
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from services.monitor_service.history import RollingHistory
from services.monitor_service.models import CHART_SERIES
from services.monitor_service.percentiles import PercentileEstimator


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ── RollingHistory ──────────────────────────────────────────

class TestRollingHistory:
    def test_default_series(self):
        h = RollingHistory()
        assert set(h.names) == set(CHART_SERIES)
        assert all(points == [] for points in h.bundle().values())

    def test_latest_empty_is_zero(self):
        h = RollingHistory()
        assert h.latest("cpu") == 0.0
        assert h.latest("no_such_series") == 0.0

    def test_append_stamps_current_time(self):
        clock = FakeClock()
        h = RollingHistory(clock=clock)
        point = h.append("cpu", 12.5)
        assert point.timestamp == clock.now
        assert h.latest("cpu") == 12.5

    def test_retention_trims_front(self):
        clock = FakeClock()
        h = RollingHistory(retention_seconds=5, clock=clock)
        for i in range(10):
            h.append("rps", float(i))
            clock.advance(1000)
        points = h.series("rps")
        newest = points[-1].timestamp
        assert all(newest - p.timestamp <= 5000 for p in points)
        assert len(points) == 6
        assert points[-1].value == 9.0

    def test_point_exactly_at_cutoff_kept(self):
        clock = FakeClock()
        h = RollingHistory(retention_seconds=1, clock=clock)
        h.append("cpu", 1.0)
        clock.advance(1000)
        h.append("cpu", 2.0)
        assert len(h.series("cpu")) == 2

    def test_idle_series_does_not_shrink(self):
        clock = FakeClock()
        h = RollingHistory(retention_seconds=1, clock=clock)
        h.append("cpu", 1.0)
        clock.advance(60_000)
        h.append("rps", 1.0)
        assert len(h.series("cpu")) == 1

    def test_series_are_independent(self):
        h = RollingHistory()
        h.append("cpu", 1.0)
        assert h.series("memory") == []

    def test_bundle_is_a_copy(self):
        h = RollingHistory()
        h.append("cpu", 1.0)
        bundle = h.bundle()
        h.append("cpu", 2.0)
        assert len(bundle["cpu"]) == 1

    def test_unknown_series_created_on_append(self):
        h = RollingHistory()
        h.append("queue_depth", 3.0)
        assert h.latest("queue_depth") == 3.0


# ── PercentileEstimator ─────────────────────────────────────

class TestPercentileEstimator:
    def test_empty(self):
        p = PercentileEstimator().compute()
        assert (p.p50, p.p95, p.p99, p.avg) == (0, 0, 0, 0)

    def test_single_sample(self):
        est = PercentileEstimator()
        est.record(7.0)
        p = est.compute()
        assert (p.p50, p.p95, p.p99, p.avg) == (7.0, 7.0, 7.0, 7.0)

    def test_nearest_rank(self):
        est = PercentileEstimator()
        for v in range(100, 0, -1):
            est.record(float(v))
        p = est.compute()
        assert p.p50 == 51.0
        assert p.p95 == 96.0
        assert p.p99 == 100.0
        assert p.avg == 50.5

    def test_small_buffer_clamps_index(self):
        est = PercentileEstimator()
        est.record(1.0)
        est.record(2.0)
        p = est.compute()
        assert p.p50 == 2.0
        assert p.p99 == 2.0

    def test_rounding(self):
        est = PercentileEstimator()
        est.record(1.23456)
        assert est.compute().p50 == 1.23

    def test_overflow_keeps_most_recent(self):
        est = PercentileEstimator(cap=10, keep=5)
        for v in range(1, 12):
            est.record(float(v))
        assert len(est) == 5
        assert est.compute().p50 == 9.0

    def test_at_cap_not_truncated(self):
        est = PercentileEstimator(cap=10, keep=5)
        for v in range(10):
            est.record(float(v))
        assert len(est) == 10

    def test_default_cap(self):
        est = PercentileEstimator()
        for v in range(1001):
            est.record(float(v))
        assert len(est) == 500

    def test_keep_larger_than_cap_rejected(self):
        with pytest.raises(ValueError):
            PercentileEstimator(cap=5, keep=10)

    def test_ordering_property(self):
        rng = random.Random(42)
        for _ in range(20):
            est = PercentileEstimator()
            for _ in range(rng.randint(1, 300)):
                est.record(rng.expovariate(1 / 80))
            p = est.compute()
            assert p.p50 <= p.p95 <= p.p99
