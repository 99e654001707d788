"""
Clock and timing helpers shared by the monitor and the cluster layer.

Design decision: durations use time.perf_counter_ns() (monotonic,
nanosecond) because wall-clock time can jump on NTP sync. Data point
timestamps use epoch milliseconds so that points produced by different
processes on the same host line up when merged.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, Generator

from utils.logger import get_logger

_log = get_logger(__name__)

# A clock returns the current time in epoch milliseconds. Components take
# one as a constructor argument so tests can drive time by hand.
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


@contextmanager
def timed(label: str, *, log: bool = True) -> Generator[dict, None, None]:
    """
    Context manager that measures elapsed time in milliseconds.

    Usage:
        with timed("health_probe", log=False) as t:
            result = await probe()
        print(t["ms"])  # e.g. 4.32

    The dict is populated *after* the block finishes, even when the block
    raises.
    """
    result: dict = {}
    start = time.perf_counter_ns()
    try:
        yield result
    finally:
        elapsed_ns = time.perf_counter_ns() - start
        result["ns"] = elapsed_ns
        result["ms"] = elapsed_ns / 1_000_000
        if log:
            _log.debug(label, latency_ms=round(result["ms"], 3))


def format_uptime(seconds: float) -> str:
    """
    Render a duration as "1d 2h 3m 4s".

    Zero days/hours/minutes are omitted; seconds are always present.
    """
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)
