"""
StatusMonitor — the one handle a host application holds.

Architecture decisions:
  1. All state lives on the instance. Create one at startup and pass it to
     the middleware and the status endpoint; there is no module singleton.
  2. Request hooks (on_request_start / on_request_complete) mutate the
     route table, counters and sample buffer synchronously. They never
     await, so on a single event loop no update is ever interleaved.
  3. A periodic asyncio task rolls the interval counters into the rolling
     history. When that task is not running (tests, environments without
     timers), rollover happens lazily from the request hooks and reads
     once an update interval has elapsed.
  4. In cluster mode every tick also sends a worker-metrics report over
     the outbound channel (if any), and reads fold in whatever reports
     the aggregator holds from other processes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from configs.settings import MonitorSettings, get_settings
from services.cluster_service.aggregator import ClusterAggregator
from services.cluster_service.channel import Channel, ChannelError
from services.cluster_service.environment import get_worker_id, is_cluster_worker
from services.monitor_service.history import RollingHistory
from services.monitor_service.models import (
    ChartBundle,
    HealthStatus,
    MetricsSnapshot,
    PartialSnapshot,
    WorkerMetricsMessage,
)
from services.monitor_service.paths import PathNormalizer, default_normalize_path
from services.monitor_service.percentiles import PercentileEstimator
from services.monitor_service.routes import RequestCounters, RouteAnalytics
from services.monitor_service.snapshot import (
    HealthProbe,
    SnapshotBuilder,
    default_health_probe,
    run_health_probe,
)
from services.monitor_service.system import (
    Capabilities,
    GCTracker,
    LagMeter,
    SystemSampler,
    detect_capabilities,
)
from utils.logger import bind_worker, get_logger
from utils.timing import Clock, format_uptime, now_ms

_log = get_logger(__name__)


class StatusMonitor:
    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        *,
        path_normalizer: Optional[PathNormalizer] = None,
        health_probe: Optional[HealthProbe] = None,
        channel: Optional[Channel] = None,
        capabilities: Optional[Capabilities] = None,
        clock: Optional[Clock] = None,
        worker_id: Optional[int] = None,
    ) -> None:
        self.settings = cfg = settings or get_settings()
        self._clock = clock or now_ms
        self._health_probe = health_probe or default_health_probe
        self.capabilities = capabilities or detect_capabilities(cfg.reduced_mode)
        self.cluster_mode = cfg.cluster_mode if cfg.cluster_mode is not None else is_cluster_worker()
        self.worker_id = worker_id if worker_id is not None else get_worker_id()

        self.routes = RouteAnalytics(
            path_normalizer or default_normalize_path,
            max_recent_errors=cfg.max_recent_errors,
            clock=self._clock,
        )
        self.counters = RequestCounters()
        self.history = RollingHistory(cfg.retention_seconds, clock=self._clock)
        self.percentiles = PercentileEstimator(cfg.sample_buffer_cap, cfg.sample_buffer_keep)
        self.sampler = SystemSampler(self.capabilities)
        self.gc_tracker = GCTracker()
        self._builder = SnapshotBuilder(
            cfg,
            routes=self.routes,
            counters=self.counters,
            history=self.history,
            percentiles=self.percentiles,
            sampler=self.sampler,
            gc_tracker=self.gc_tracker,
            health_probe=self._health_probe,
            clock=self._clock,
        )

        self.aggregator: Optional[ClusterAggregator] = None
        if self.cluster_mode:
            self.aggregator = ClusterAggregator(
                timeout_ms=cfg.worker_timeout_ms,
                max_routes=cfg.max_routes,
                clock=self._clock,
            )
            _log.info("cluster_mode_enabled", worker_id=self.worker_id, reporting=channel is not None)

        self._channel = channel
        self._task: Optional[asyncio.Task] = None
        self._last_rollover = self._clock()
        self._lag = LagMeter(cfg.update_interval_ms, self._last_rollover)

    # ── Inputs from the HTTP layer ──────────────────────────

    def on_request_start(self, path: str, method: str) -> None:
        self.routes.record_start(path, method)
        self.counters.on_start()

    def on_request_complete(self, path: str, method: str, duration_ms: float, status_code: int) -> None:
        self.counters.on_complete(duration_ms, status_code)
        self.percentiles.record(duration_ms)
        self.routes.record_complete(path, method, duration_ms, status_code)
        self._maybe_rollover()

    def on_rate_limit_event(self, blocked: bool) -> None:
        self.counters.on_rate_limit(blocked)

    # ── Rollover ────────────────────────────────────────────

    def rollover(self) -> None:
        """Roll the interval counters and current gauges into the history."""
        cfg = self.settings
        caps = self.capabilities
        now = self._clock()
        elapsed_ms = max(now - self._last_rollover, cfg.update_interval_ms)
        self._last_rollover = now

        lag = self._lag.measure(now)
        requests, avg_response = self.counters.drain_interval()
        history = self.history

        if caps.system:
            history.append("cpu", self.sampler.cpu_percent())
        sample = self.sampler.sample(track_heap_growth=True)
        if caps.system:
            history.append("memory", sample.memory_mb)
            history.append("load_avg", sample.load_avg)
        if caps.process:
            history.append("heap", sample.heap_used_mb)
        if caps.event_loop:
            history.append("event_loop_lag", lag if self.is_running else 0.0)

        history.append("error_rate", self._builder.error_rate)
        history.append("rps", round(requests / (elapsed_ms / 1000)))
        history.append("response_time", avg_response)

    def _maybe_rollover(self) -> None:
        if self._task is None and self._clock() - self._last_rollover >= self.settings.update_interval_ms:
            self.rollover()

    async def tick(self) -> None:
        """One timer tick: rollover, then report to the coordinator if clustered."""
        self.rollover()
        await self.report()

    async def _run(self) -> None:
        interval = self.settings.update_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except Exception:
                _log.exception("monitor_tick_failed")

    def start(self) -> None:
        """Start the rollover timer. Must be called with a running event loop."""
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        if self.capabilities.process:
            self.gc_tracker.install()
        if self.cluster_mode:
            bind_worker(self.worker_id, self.sampler.pid)
        self._lag.reset(self._clock())
        self._task = loop.create_task(self._run())
        _log.info("monitor_started", interval_ms=self.settings.update_interval_ms)

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        self.gc_tracker.uninstall()
        _log.info("monitor_stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None

    # ── Outputs ─────────────────────────────────────────────

    async def local_snapshot(self) -> MetricsSnapshot:
        """This process only, never aggregated."""
        self._maybe_rollover()
        return await self._builder.build()

    def local_charts(self) -> ChartBundle:
        self._maybe_rollover()
        return self.history.bundle()

    async def snapshot(self) -> MetricsSnapshot:
        """Local snapshot, folded with active worker reports in cluster mode."""
        local = await self.local_snapshot()
        if self.aggregator is not None:
            return self.aggregator.aggregated_snapshot(local)
        return local

    def charts(self) -> ChartBundle:
        local = self.local_charts()
        if self.aggregator is not None:
            return self.aggregator.aggregated_charts(local)
        return local

    async def check_health(self) -> HealthStatus:
        """Run the health probe on its own; failures come back as disconnected."""
        return await run_health_probe(self._health_probe)

    @staticmethod
    def format_uptime(seconds: float) -> str:
        return format_uptime(seconds)

    # ── Cluster ─────────────────────────────────────────────

    async def build_report(self) -> WorkerMetricsMessage:
        local = await self.local_snapshot()
        return WorkerMetricsMessage(
            worker_id=self.worker_id,
            pid=local.pid,
            partial_snapshot=PartialSnapshot.model_validate(local.model_dump()),
            charts=self.history.bundle(),
        )

    async def report(self) -> bool:
        """Send this process's report over the outbound channel. Failures are dropped."""
        if not self.cluster_mode or self._channel is None:
            return False
        message = await self.build_report()
        try:
            self._channel.send(message.model_dump(by_alias=True))
        except ChannelError as e:
            _log.debug("worker_report_dropped", error=str(e))
            return False
        return True

    def ingest_worker_message(self, message: Union[WorkerMetricsMessage, Mapping[str, Any]]) -> bool:
        """
        Accept a worker-metrics report. Anything else is ignored; a report
        that fails validation is logged and dropped.
        """
        if self.aggregator is None:
            _log.debug("worker_message_ignored", reason="cluster_mode_disabled")
            return False
        if not isinstance(message, WorkerMetricsMessage):
            if not isinstance(message, Mapping) or message.get("type") != "worker-metrics":
                return False
            try:
                message = WorkerMetricsMessage.model_validate(message)
            except ValidationError as e:
                _log.warning("worker_message_invalid", errors=e.error_count())
                return False
        self.aggregator.ingest_message(message)
        return True

    def listen(self, channel: Channel) -> None:
        """Feed every message arriving on channel into the aggregator."""
        channel.on_message(self.ingest_worker_message)
