"""
Cluster aggregator — folds worker reports into one coordinator-side view.

Lifecycle of a worker record:
  unknown  → first report creates it (ACTIVE)
  ACTIVE   → every report overwrites it wholesale and refreshes last_seen_at
  STALE    → now - last_seen_at > timeout; removed on the next read

Eviction is pull-based: it runs at the top of every read, there is no
timer. The record map has a single writer (the message ingestion point)
and is read on the same event loop, so no locking.

Merge policy for snapshots:
  sum      rps, total_requests, active_connections, rate-limit counters,
           status code counts (per code)
  average  cpu (1 dp), response_time (2 dp), error_rate (2 dp)
  routes   union of each worker's three ranked lists (one entry per key
           per worker), summed by (method, path) across workers, then
           re-ranked over the merged set
Chart series merge by exact timestamp: "sum" or "avg" per CHART_SERIES.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from services.monitor_service.models import (
    CHART_SERIES,
    ChartBundle,
    MetricDataPoint,
    MetricsSnapshot,
    PartialSnapshot,
    RateLimitStats,
    RouteStats,
    WorkerInfo,
    WorkerMetricsMessage,
)
from services.monitor_service.routes import rank_by_avg_time, rank_by_count, rank_by_errors
from utils.logger import get_logger
from utils.timing import Clock, now_ms

_log = get_logger(__name__)

WORKER_TIMEOUT_MS = 10_000


@dataclass
class WorkerRecord:
    process_id: int
    pid: int
    snapshot: PartialSnapshot
    charts: ChartBundle
    last_seen_at: int


class ClusterAggregator:
    def __init__(
        self,
        *,
        timeout_ms: int = WORKER_TIMEOUT_MS,
        max_routes: int = 10,
        clock: Clock = now_ms,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._max_routes = max_routes
        self._clock = clock
        self._workers: Dict[int, WorkerRecord] = {}

    # ── Ingestion ───────────────────────────────────────────

    def ingest(
        self,
        process_id: int,
        pid: int,
        partial_snapshot: PartialSnapshot,
        charts: Optional[ChartBundle] = None,
    ) -> WorkerRecord:
        """Upsert the record for process_id. Later reports always win."""
        if process_id not in self._workers:
            _log.info("worker_joined", worker_id=process_id, pid=pid)
        record = WorkerRecord(
            process_id=process_id,
            pid=pid,
            snapshot=partial_snapshot,
            charts=charts or {},
            last_seen_at=self._clock(),
        )
        self._workers[process_id] = record
        return record

    def ingest_message(self, message: WorkerMetricsMessage) -> WorkerRecord:
        return self.ingest(message.worker_id, message.pid, message.partial_snapshot, message.charts)

    def evict_stale(self) -> List[int]:
        now = self._clock()
        stale = [
            wid for wid, record in self._workers.items()
            if now - record.last_seen_at > self._timeout_ms
        ]
        for wid in stale:
            record = self._workers.pop(wid)
            _log.info("worker_evicted", worker_id=wid, pid=record.pid, idle_ms=now - record.last_seen_at)
        return stale

    def _active(self) -> List[WorkerRecord]:
        self.evict_stale()
        return list(self._workers.values())

    # ── Roster ──────────────────────────────────────────────

    @property
    def worker_count(self) -> int:
        return len(self._active())

    def worker_info(self) -> List[WorkerInfo]:
        return [_worker_info(record) for record in self._active()]

    # ── Snapshot merge ──────────────────────────────────────

    def aggregated_snapshot(self, local: MetricsSnapshot) -> MetricsSnapshot:
        """
        Fold every active worker's report on top of the local snapshot.
        With no active workers the local snapshot comes back unchanged.
        """
        workers = self._active()
        if not workers:
            return local

        n = len(workers)
        rps = total_requests = active_connections = 0
        cpu = response_time = error_rate = 0.0
        blocked = limited = 0
        status_codes: Dict[str, int] = defaultdict(int)
        routes: Dict[Tuple[str, str], RouteStats] = {}

        for record in workers:
            m = record.snapshot
            rps += m.rps
            total_requests += m.total_requests
            active_connections += m.active_connections
            cpu += m.cpu
            response_time += m.response_time
            error_rate += m.error_rate
            blocked += m.rate_limit_stats.blocked
            limited += m.rate_limit_stats.total
            for code, count in m.status_codes.items():
                status_codes[code] += count
            # A route can sit in several of one worker's lists; count it once per worker.
            own = {r.key: r for r in (*m.top_routes, *m.slowest_routes, *m.error_routes)}
            for route in own.values():
                _merge_route(routes, route)

        merged = list(routes.values())
        return local.model_copy(
            update={
                "cpu": round(cpu / n, 1),
                "response_time": round(response_time / n, 2),
                "error_rate": round(error_rate / n, 2),
                "rps": rps,
                "total_requests": total_requests,
                "active_connections": active_connections,
                "status_codes": dict(status_codes) if status_codes else local.status_codes,
                "rate_limit_stats": RateLimitStats(blocked=blocked, total=limited),
                "top_routes": rank_by_count(merged, self._max_routes),
                "slowest_routes": rank_by_avg_time(merged, self._max_routes),
                "error_routes": rank_by_errors(merged, self._max_routes),
                "workers": [_worker_info(record) for record in workers],
                "worker_count": n,
            }
        )

    # ── Chart merge ─────────────────────────────────────────

    def aggregated_charts(self, local: ChartBundle) -> ChartBundle:
        """
        Merge each named series of the local bundle with every worker's by
        exact timestamp. With no active workers the local bundle comes
        back unchanged.
        """
        workers = self._active()
        if not workers:
            return local

        names = list(local)
        for record in workers:
            for name in record.charts:
                if name not in names:
                    names.append(name)

        return {
            name: merge_series(
                [local.get(name, []), *(record.charts.get(name, []) for record in workers)],
                mode=CHART_SERIES.get(name, "avg"),
            )
            for name in names
        }


def merge_series(series: List[List[MetricDataPoint]], mode: str = "avg") -> List[MetricDataPoint]:
    """
    Combine points that share a timestamp (sum or average), keep the rest
    as they are, and return them sorted by timestamp. Values are rounded
    to 2 decimals.
    """
    buckets: Dict[int, List[float]] = {}
    for points in series:
        for point in points:
            buckets.setdefault(point.timestamp, []).append(point.value)

    merged = []
    for timestamp in sorted(buckets):
        values = buckets[timestamp]
        value = sum(values) if mode == "sum" else sum(values) / len(values)
        merged.append(MetricDataPoint(timestamp=timestamp, value=round(value, 2)))
    return merged


def _merge_route(routes: Dict[Tuple[str, str], RouteStats], route: RouteStats) -> None:
    existing = routes.get(route.key)
    if existing is None:
        routes[route.key] = route.model_copy()
        return
    existing.count += route.count
    existing.total_time += route.total_time
    existing.avg_time = existing.total_time / existing.count if existing.count else 0.0
    existing.min_time = min(existing.min_time, route.min_time)
    existing.max_time = max(existing.max_time, route.max_time)
    existing.error_count += route.error_count
    existing.last_access_time = max(existing.last_access_time, route.last_access_time)


def _worker_info(record: WorkerRecord) -> WorkerInfo:
    m = record.snapshot
    return WorkerInfo(
        pid=record.pid,
        cpu=m.cpu,
        memory_mb=m.memory_mb,
        rps=m.rps,
        total_requests=m.total_requests,
        response_time=m.response_time,
    )
