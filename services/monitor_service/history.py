"""
Rolling history store — one retention-bounded time series per metric.

Retention is enforced on write: each append trims points older than
now - retention from the front of that series. A series that stops
receiving writes keeps its last points until the next append.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from services.monitor_service.models import CHART_SERIES, ChartBundle, MetricDataPoint
from utils.timing import Clock, now_ms


class RollingHistory:
    def __init__(
        self,
        retention_seconds: int = 60,
        clock: Clock = now_ms,
        series: Iterable[str] = CHART_SERIES,
    ) -> None:
        self._retention_ms = retention_seconds * 1000
        self._clock = clock
        self._series: Dict[str, Deque[MetricDataPoint]] = {name: deque() for name in series}

    def append(self, name: str, value: float, timestamp: Optional[int] = None) -> MetricDataPoint:
        """Push a point stamped with the current time, then trim expired points."""
        now = self._clock() if timestamp is None else timestamp
        points = self._series.setdefault(name, deque())
        point = MetricDataPoint(timestamp=now, value=value)
        points.append(point)

        cutoff = now - self._retention_ms
        while points and points[0].timestamp < cutoff:
            points.popleft()
        return point

    def latest(self, name: str) -> float:
        """Most recent value of a series, 0.0 when it is empty or unknown."""
        points = self._series.get(name)
        if not points:
            return 0.0
        return points[-1].value

    def series(self, name: str) -> List[MetricDataPoint]:
        return list(self._series.get(name, ()))

    def bundle(self) -> ChartBundle:
        """Copy of every series, safe to hand to another consumer."""
        return {name: list(points) for name, points in self._series.items()}

    @property
    def names(self) -> List[str]:
        return list(self._series)
