"""
Monitor Service Package — request telemetry collection for one process.

StatusMonitor lives in services.monitor_service.monitor; it is not
re-exported here because the cluster layer imports these models.
"""

from services.monitor_service.models import (
    CHART_SERIES,
    ChartBundle,
    MetricDataPoint,
    MetricsSnapshot,
    PartialSnapshot,
    RouteStats,
    WorkerMetricsMessage,
)
from services.monitor_service.paths import default_normalize_path

__all__ = [
    "CHART_SERIES",
    "ChartBundle",
    "MetricDataPoint",
    "MetricsSnapshot",
    "PartialSnapshot",
    "RouteStats",
    "WorkerMetricsMessage",
    "default_normalize_path",
]
