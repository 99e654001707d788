"""
Snapshot builder — composes counters, route rankings, percentiles, alerts
and the health probe into one frozen MetricsSnapshot.

The health probe is the only awaited call. Whatever it does (raise, return
garbage), snapshot building goes on with a disconnected/zero-latency
result; nothing here propagates to the caller.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Union

from configs.settings import MonitorSettings
from services.monitor_service.alerts import AlertTracker, evaluate_alerts
from services.monitor_service.history import RollingHistory
from services.monitor_service.models import GCStats, HealthStatus, MetricsSnapshot
from services.monitor_service.percentiles import PercentileEstimator
from services.monitor_service.routes import RequestCounters, RouteAnalytics
from services.monitor_service.system import GCTracker, SystemSampler
from utils.logger import get_logger
from utils.timing import Clock, now_ms, timed

_log = get_logger(__name__)

HealthProbe = Callable[[], Awaitable[Union[HealthStatus, Dict[str, Any]]]]


async def default_health_probe() -> HealthStatus:
    """Always connected, zero latency."""
    return HealthStatus(connected=True, latency_ms=0.0)


async def run_health_probe(probe: HealthProbe) -> HealthStatus:
    """
    Await the probe and measure it. A probe that reports no latency of its
    own gets the measured call latency. Any failure becomes
    HealthStatus(connected=False, latency_ms=0).
    """
    try:
        with timed("health_probe", log=False) as t:
            raw = await probe()
        result = raw if isinstance(raw, HealthStatus) else HealthStatus.model_validate(raw)
    except Exception as e:
        _log.warning("health_probe_failed", error=str(e), error_type=type(e).__name__)
        return HealthStatus(connected=False, latency_ms=0.0)

    if not result.latency_ms:
        result = result.model_copy(update={"latency_ms": round(t["ms"], 2)})
    return result


def compute_error_rate(total_errors: int, total_requests: int) -> float:
    """Errors as a percentage of all completed requests, 2 decimals."""
    if total_requests == 0:
        return 0.0
    return round(total_errors / total_requests * 100, 2)


class SnapshotBuilder:
    def __init__(
        self,
        settings: MonitorSettings,
        *,
        routes: RouteAnalytics,
        counters: RequestCounters,
        history: RollingHistory,
        percentiles: PercentileEstimator,
        sampler: SystemSampler,
        gc_tracker: GCTracker,
        health_probe: HealthProbe = default_health_probe,
        clock: Clock = now_ms,
    ) -> None:
        self._settings = settings
        self._routes = routes
        self._counters = counters
        self._history = history
        self._percentiles = percentiles
        self._sampler = sampler
        self._gc = gc_tracker
        self._probe = health_probe
        self._clock = clock
        self._alerts = AlertTracker()

    @property
    def error_rate(self) -> float:
        return compute_error_rate(self._routes.total_errors, self._counters.total_requests)

    async def build(self, health: Optional[HealthStatus] = None) -> MetricsSnapshot:
        if health is None:
            health = await run_health_probe(self._probe)

        caps = self._sampler.capabilities
        sample = self._sampler.sample()
        history = self._history
        counters = self._counters
        max_routes = self._settings.max_routes
        error_rate = self.error_rate

        cpu = history.latest("cpu")
        response_time = history.latest("response_time")
        lag = history.latest("event_loop_lag")

        alerts = evaluate_alerts(
            self._settings.alerts,
            cpu=cpu,
            memory=sample.memory_percent,
            response_time=response_time,
            error_rate=error_rate,
            event_loop_lag=lag,
            capabilities=caps,
        )
        self._alerts.observe(
            alerts,
            {
                "cpu": cpu,
                "memory": sample.memory_percent,
                "response_time": response_time,
                "error_rate": error_rate,
                "event_loop_lag": lag,
            },
        )

        return MetricsSnapshot(
            timestamp=self._clock(),
            cpu=cpu,
            memory_mb=sample.memory_mb,
            memory_percent=sample.memory_percent,
            heap_used_mb=sample.heap_used_mb,
            heap_total_mb=sample.heap_total_mb,
            load_avg=sample.load_avg,
            uptime=sample.uptime,
            process_uptime=sample.process_uptime,
            response_time=response_time,
            rps=history.latest("rps"),
            status_codes=dict(counters.status_codes),
            total_requests=counters.total_requests,
            active_connections=counters.active_connections,
            event_loop_lag=lag,
            hostname=self._sampler.hostname(),
            platform=self._sampler.platform(),
            python_version=self._sampler.python_version(),
            pid=self._sampler.pid,
            cpu_count=self._sampler.cpu_count(),
            percentiles=self._percentiles.compute(),
            # Copies: the live entries keep changing after the snapshot is taken.
            top_routes=[r.model_copy() for r in self._routes.top_by_count(max_routes)],
            slowest_routes=[r.model_copy() for r in self._routes.slowest_by_avg(max_routes)],
            error_routes=[r.model_copy() for r in self._routes.most_errors(max_routes)],
            recent_errors=self._routes.recent_errors,
            alerts=alerts,
            gc=self._gc.stats(sample.heap_growth_rate) if caps.process else GCStats(),
            health=health,
            rate_limit_stats=counters.rate_limit_stats,
            error_rate=error_rate,
            reduced_mode=caps.is_reduced,
        )
