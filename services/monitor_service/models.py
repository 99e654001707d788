"""
Telemetry data model — every value the monitor produces or exchanges.

Why Pydantic models instead of raw dicts?
  - Worker reports cross a process boundary, so the coordinator validates
    them before folding (a malformed report is dropped, never merged).
  - Field names are snake_case in Python and camelCase on the wire
    (alias generator), so the worker-metrics message keeps the
    {type, workerId, pid, partialSnapshot, charts} shape.
  - Snapshots are frozen: a consumer can hold one without it changing
    under it on the next rollover.
"""

from __future__ import annotations

import math
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


# Merge mode per chart series. "sum" series are added across processes,
# "avg" series are averaged.
CHART_SERIES: Dict[str, str] = {
    "cpu": "avg",
    "memory": "avg",
    "heap": "avg",
    "load_avg": "avg",
    "response_time": "avg",
    "rps": "sum",
    "event_loop_lag": "avg",
    "error_rate": "avg",
}


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenWireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class MetricDataPoint(_FrozenWireModel):
    """One (timestamp, value) sample. Timestamp is epoch milliseconds."""

    timestamp: int
    value: float


ChartBundle = Dict[str, List[MetricDataPoint]]


class RouteStats(_WireModel):
    """
    Aggregate counters for one (method, normalized path).

    min_time starts at +inf until the first completion; JSON output
    renders that sentinel as 0.
    """

    path: str
    method: str
    count: int = 0
    total_time: float = 0.0
    avg_time: float = 0.0
    min_time: float = math.inf
    max_time: float = 0.0
    error_count: int = 0
    last_access_time: int = 0

    @field_serializer("min_time", when_used="json")
    def _finite_min_time(self, value: float) -> float:
        return value if math.isfinite(value) else 0.0

    @property
    def key(self) -> tuple:
        return (self.method, self.path)


class ErrorEntry(_FrozenWireModel):
    timestamp: int
    path: str
    method: str
    status_code: int
    message: str


class PercentileSet(_FrozenWireModel):
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    avg: float = 0.0


class AlertFlags(_FrozenWireModel):
    cpu: bool = False
    memory: bool = False
    response_time: bool = False
    error_rate: bool = False
    event_loop_lag: bool = False


class HealthStatus(_FrozenWireModel):
    """Outcome of the injected health probe."""

    connected: bool = True
    latency_ms: float = 0.0
    name: Optional[str] = None
    details: Optional[Dict[str, object]] = None


class GCStats(_FrozenWireModel):
    collections: int = 0
    pause_time_ms: float = 0.0
    heap_growth_rate: float = 0.0


class RateLimitStats(_FrozenWireModel):
    blocked: int = 0
    total: int = 0


class WorkerInfo(_FrozenWireModel):
    """Roster entry for one active worker in an aggregated snapshot."""

    pid: int
    cpu: float = 0.0
    memory_mb: float = 0.0
    rps: float = 0.0
    total_requests: int = 0
    response_time: float = 0.0


class MetricsSnapshot(_FrozenWireModel):
    """Point-in-time composite of everything the monitor tracks."""

    timestamp: int
    cpu: float = 0.0
    memory_mb: float = 0.0
    memory_percent: float = 0.0
    heap_used_mb: float = 0.0
    heap_total_mb: float = 0.0
    load_avg: float = 0.0
    uptime: int = 0
    process_uptime: int = 0
    response_time: float = 0.0
    rps: float = 0.0
    status_codes: Dict[str, int] = Field(default_factory=dict)
    total_requests: int = 0
    active_connections: int = 0
    event_loop_lag: float = 0.0
    hostname: str = ""
    platform: str = ""
    python_version: str = ""
    pid: int = 0
    cpu_count: int = 0
    percentiles: PercentileSet = Field(default_factory=PercentileSet)
    top_routes: List[RouteStats] = Field(default_factory=list)
    slowest_routes: List[RouteStats] = Field(default_factory=list)
    error_routes: List[RouteStats] = Field(default_factory=list)
    recent_errors: List[ErrorEntry] = Field(default_factory=list)
    alerts: AlertFlags = Field(default_factory=AlertFlags)
    gc: GCStats = Field(default_factory=GCStats)
    health: HealthStatus = Field(default_factory=HealthStatus)
    rate_limit_stats: RateLimitStats = Field(default_factory=RateLimitStats)
    error_rate: float = 0.0
    workers: Optional[List[WorkerInfo]] = None
    worker_count: Optional[int] = None
    reduced_mode: bool = False


class PartialSnapshot(_WireModel):
    """
    The subset of a snapshot a worker reports to the coordinator.

    Every field is optional in the sense that a missing key falls back to
    its zero default (0, empty dict, empty list). Unknown keys are ignored,
    so a full MetricsSnapshot dump validates as a PartialSnapshot.
    """

    cpu: float = 0.0
    memory_mb: float = 0.0
    rps: float = 0.0
    total_requests: int = 0
    active_connections: int = 0
    response_time: float = 0.0
    error_rate: float = 0.0
    status_codes: Dict[str, int] = Field(default_factory=dict)
    rate_limit_stats: RateLimitStats = Field(default_factory=RateLimitStats)
    top_routes: List[RouteStats] = Field(default_factory=list)
    slowest_routes: List[RouteStats] = Field(default_factory=list)
    error_routes: List[RouteStats] = Field(default_factory=list)


class WorkerMetricsMessage(_WireModel):
    """Per-tick report sent from a worker to the coordinating process."""

    type: Literal["worker-metrics"] = "worker-metrics"
    worker_id: int
    pid: int
    partial_snapshot: PartialSnapshot = Field(default_factory=PartialSnapshot)
    charts: Dict[str, List[MetricDataPoint]] = Field(default_factory=dict)
