"""
Route analytics table and point-in-time request counters.

Both are updated synchronously from the request-tracking hooks. The host
runs them on a single event loop, so no handler is ever interrupted
mid-update and no locking is needed here.

Counting rule: a request counts toward total_requests when it completes,
not when it starts. That keeps sum(route.count) == total_requests for
any sequence of completions.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Tuple

from services.monitor_service.models import ErrorEntry, RateLimitStats, RouteStats
from services.monitor_service.paths import PathNormalizer, default_normalize_path
from utils.timing import Clock, now_ms

RouteKey = Tuple[str, str]


class RouteAnalytics:
    """
    Aggregate counters per (method, normalized path), plus a bounded
    most-recent-first error log.

    Entries are kept in insertion order; the ranking methods use Python's
    stable sort, so ties resolve to first-seen-first.
    """

    def __init__(
        self,
        normalizer: PathNormalizer = default_normalize_path,
        max_recent_errors: int = 10,
        clock: Clock = now_ms,
    ) -> None:
        self._normalize = normalizer
        self._clock = clock
        self._routes: Dict[RouteKey, RouteStats] = {}
        self._errors: Deque[ErrorEntry] = deque(maxlen=max_recent_errors)

    def _entry(self, path: str, method: str) -> RouteStats:
        normalized = self._normalize(path)
        key = (method, normalized)
        stats = self._routes.get(key)
        if stats is None:
            stats = RouteStats(path=normalized, method=method, last_access_time=self._clock())
            self._routes[key] = stats
        return stats

    def record_start(self, path: str, method: str) -> RouteStats:
        """Create the entry for this route if it does not exist yet."""
        return self._entry(path, method)

    def record_complete(
        self,
        path: str,
        method: str,
        duration_ms: float,
        status_code: int,
    ) -> RouteStats:
        """
        Fold one completed request into its route entry.

        A completion for a route that never saw record_start still creates
        the entry, so no completion is lost.
        """
        stats = self._entry(path, method)
        now = self._clock()

        stats.count += 1
        stats.total_time += duration_ms
        stats.avg_time = stats.total_time / stats.count
        stats.min_time = min(stats.min_time, duration_ms)
        stats.max_time = max(stats.max_time, duration_ms)
        stats.last_access_time = now

        if status_code >= 400:
            stats.error_count += 1
            self._errors.appendleft(
                ErrorEntry(
                    timestamp=now,
                    path=stats.path,
                    method=method,
                    status_code=status_code,
                    message=f"{method} {stats.path} returned {status_code}",
                )
            )
        return stats

    # ── Ranking ─────────────────────────────────────────────

    def top_by_count(self, n: int) -> List[RouteStats]:
        return rank_by_count(self._routes.values(), n)

    def slowest_by_avg(self, n: int) -> List[RouteStats]:
        return rank_by_avg_time(self._routes.values(), n)

    def most_errors(self, n: int) -> List[RouteStats]:
        return rank_by_errors(self._routes.values(), n)

    # ── Read accessors ──────────────────────────────────────

    @property
    def routes(self) -> List[RouteStats]:
        return list(self._routes.values())

    @property
    def recent_errors(self) -> List[ErrorEntry]:
        return list(self._errors)

    @property
    def total_errors(self) -> int:
        return sum(r.error_count for r in self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)


def rank_by_count(routes, n: int) -> List[RouteStats]:
    """Descending by count. Shared with the cluster aggregator."""
    return sorted(routes, key=lambda r: r.count, reverse=True)[:n]


def rank_by_avg_time(routes, n: int) -> List[RouteStats]:
    active = [r for r in routes if r.count > 0]
    return sorted(active, key=lambda r: r.avg_time, reverse=True)[:n]


def rank_by_errors(routes, n: int) -> List[RouteStats]:
    failing = [r for r in routes if r.error_count > 0]
    return sorted(failing, key=lambda r: r.error_count, reverse=True)[:n]


@dataclass
class RequestCounters:
    """
    Instantaneous counters plus the per-interval accumulators that the
    rollover drains into the rolling history.
    """

    total_requests: int = 0
    active_connections: int = 0
    status_codes: Dict[str, int] = field(default_factory=dict)
    rate_limit_blocked: int = 0
    rate_limit_total: int = 0

    interval_requests: int = 0
    interval_response_time: float = 0.0
    interval_responses: int = 0

    def on_start(self) -> None:
        self.active_connections += 1

    def on_complete(self, duration_ms: float, status_code: int) -> None:
        self.active_connections = max(0, self.active_connections - 1)
        self.total_requests += 1
        self.interval_requests += 1
        self.interval_response_time += duration_ms
        self.interval_responses += 1
        code = str(status_code)
        self.status_codes[code] = self.status_codes.get(code, 0) + 1

    def on_rate_limit(self, blocked: bool) -> None:
        self.rate_limit_total += 1
        if blocked:
            self.rate_limit_blocked += 1

    def drain_interval(self) -> Tuple[int, float]:
        """
        Return (requests, average response ms) for the interval just ended
        and reset the interval accumulators.
        """
        requests = self.interval_requests
        avg = 0.0
        if self.interval_responses:
            avg = round(self.interval_response_time / self.interval_responses, 2)
        self.interval_requests = 0
        self.interval_response_time = 0.0
        self.interval_responses = 0
        return requests, avg

    @property
    def rate_limit_stats(self) -> RateLimitStats:
        return RateLimitStats(blocked=self.rate_limit_blocked, total=self.rate_limit_total)
