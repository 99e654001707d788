"""
Latency percentiles from a bounded buffer of raw response-time samples.

Eviction policy: once a recorded sample pushes the buffer past `cap`, the
oldest samples are dropped so only the most recent `keep` remain. This is
recency-biased rather than a uniform reservoir, so right after a burst the
percentiles mostly describe the burst.

Percentiles use nearest rank without interpolation:
index(q) = floor(len * q), clamped to len - 1.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Deque

from services.monitor_service.models import PercentileSet


class PercentileEstimator:
    def __init__(self, cap: int = 1000, keep: int = 500) -> None:
        if keep > cap:
            raise ValueError(f"keep ({keep}) must not exceed cap ({cap})")
        self._cap = cap
        self._keep = keep
        self._samples: Deque[float] = deque()

    def record(self, value_ms: float) -> None:
        self._samples.append(value_ms)
        if len(self._samples) > self._cap:
            while len(self._samples) > self._keep:
                self._samples.popleft()

    def compute(self) -> PercentileSet:
        n = len(self._samples)
        if n == 0:
            return PercentileSet()

        ordered = sorted(self._samples)

        def at(q: float) -> float:
            return round(ordered[min(math.floor(n * q), n - 1)], 2)

        return PercentileSet(
            p50=at(0.50),
            p95=at(0.95),
            p99=at(0.99),
            avg=round(sum(ordered) / n, 2),
        )

    def __len__(self) -> int:
        return len(self._samples)
