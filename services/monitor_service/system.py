"""
Host and runtime sampling — CPU, memory, load, GC, event-loop lag.

One code path serves both full and reduced environments. A Capabilities
descriptor says which metric categories this process can read; anything
unavailable is reported as zero instead of raising. psutil is probed once
at startup, and a missing or sandboxed psutil means reduced capability.
"""

from __future__ import annotations

import gc
import os
import platform as _platform
import socket
import time
from dataclasses import dataclass
from typing import Optional

from services.monitor_service.models import GCStats
from utils.logger import get_logger

_log = get_logger(__name__)

_MB = 1024 * 1024


@dataclass(frozen=True)
class Capabilities:
    """Which metric categories the hosting environment exposes."""

    system: bool = True       # cpu, memory, load average, host uptime
    process: bool = True      # resident memory ("heap"), GC, process uptime
    event_loop: bool = True   # tick lag

    @classmethod
    def full(cls) -> "Capabilities":
        return cls()

    @classmethod
    def reduced(cls) -> "Capabilities":
        return cls(system=False, process=False, event_loop=False)

    @property
    def is_reduced(self) -> bool:
        return not (self.system or self.process or self.event_loop)


def detect_capabilities(reduced_mode: Optional[bool] = None) -> Capabilities:
    """
    Resolve capabilities. An explicit reduced_mode wins; otherwise probe
    psutil and fall back to reduced when it cannot read this process.
    """
    if reduced_mode is True:
        return Capabilities.reduced()
    if reduced_mode is False:
        return Capabilities.full()

    try:
        import psutil

        psutil.Process().memory_info()
        psutil.virtual_memory()
    except Exception as e:
        _log.warning("system_metrics_unavailable", error=str(e))
        return Capabilities.reduced()
    return Capabilities.full()


@dataclass(frozen=True)
class SystemSample:
    memory_mb: float = 0.0
    memory_percent: float = 0.0
    heap_used_mb: float = 0.0
    heap_total_mb: float = 0.0
    heap_growth_rate: float = 0.0
    load_avg: float = 0.0
    uptime: int = 0
    process_uptime: int = 0


class SystemSampler:
    """
    Reads host/process gauges through psutil.

    cpu_percent() is measured between consecutive calls, so the very first
    reading is 0 by construction.
    """

    def __init__(self, capabilities: Capabilities) -> None:
        self.capabilities = capabilities
        self._process = None
        self._last_heap_used = 0.0
        self._heap_growth_rate = 0.0
        if capabilities.system or capabilities.process:
            import psutil

            self._psutil = psutil
            self._process = psutil.Process()
            self._started_at = self._process.create_time()
        else:
            self._psutil = None
            self._started_at = time.time()

    def cpu_percent(self) -> float:
        if not self.capabilities.system:
            return 0.0
        return round(self._psutil.cpu_percent(interval=None), 1)

    def sample(self, *, track_heap_growth: bool = False) -> SystemSample:
        """
        Read every gauge. heap_growth_rate only advances when
        track_heap_growth is set (once per rollover tick).
        """
        values = {}
        if self.capabilities.system:
            vm = self._psutil.virtual_memory()
            used = vm.total - vm.available
            values.update(
                memory_mb=round(used / _MB, 1),
                memory_percent=round(used / vm.total * 100, 1) if vm.total else 0.0,
                load_avg=round(self._load_avg(), 2),
                uptime=int(time.time() - self._psutil.boot_time()),
            )
        if self.capabilities.process:
            mem = self._process.memory_info()
            heap_used = round(mem.rss / _MB, 1)
            if track_heap_growth:
                if self._last_heap_used > 0:
                    self._heap_growth_rate = round(heap_used - self._last_heap_used, 2)
                self._last_heap_used = heap_used
            values.update(
                heap_used_mb=heap_used,
                heap_total_mb=round(mem.vms / _MB, 1),
                heap_growth_rate=self._heap_growth_rate,
                process_uptime=int(time.time() - self._started_at),
            )
        return SystemSample(**values)

    def _load_avg(self) -> float:
        try:
            return self._psutil.getloadavg()[0]
        except (AttributeError, OSError):
            return 0.0

    # ── Static host identity ────────────────────────────────

    @staticmethod
    def hostname() -> str:
        return socket.gethostname()

    @staticmethod
    def platform() -> str:
        return f"{_platform.system()} {_platform.release()}"

    @staticmethod
    def python_version() -> str:
        return _platform.python_version()

    @property
    def pid(self) -> int:
        return os.getpid()

    def cpu_count(self) -> int:
        if self._psutil is not None:
            return self._psutil.cpu_count() or 0
        return os.cpu_count() or 0


class GCTracker:
    """
    Counts garbage collections and accumulates their pause time through
    gc.callbacks. Only active between install() and uninstall().
    """

    def __init__(self) -> None:
        self.collections = 0
        self.pause_time_ms = 0.0
        self._started: Optional[int] = None
        self._installed = False

    def _callback(self, phase: str, info: dict) -> None:
        if phase == "start":
            self._started = time.perf_counter_ns()
        elif phase == "stop" and self._started is not None:
            self.collections += 1
            self.pause_time_ms += (time.perf_counter_ns() - self._started) / 1_000_000
            self._started = None

    def install(self) -> None:
        if not self._installed:
            gc.callbacks.append(self._callback)
            self._installed = True

    def uninstall(self) -> None:
        if self._installed:
            gc.callbacks.remove(self._callback)
            self._installed = False

    def stats(self, heap_growth_rate: float = 0.0) -> GCStats:
        return GCStats(
            collections=self.collections,
            pause_time_ms=round(self.pause_time_ms, 2),
            heap_growth_rate=heap_growth_rate,
        )


class LagMeter:
    """
    Event-loop lag from the rollover timer itself: how much later than
    scheduled the tick actually ran. lag = max(0, gap - interval).
    """

    def __init__(self, interval_ms: int, start_ms: int = 0) -> None:
        self._interval_ms = interval_ms
        self._last_ms = start_ms

    def reset(self, now: int) -> None:
        self._last_ms = now

    def measure(self, now: int) -> float:
        gap = now - self._last_ms
        self._last_ms = now
        return round(max(0, gap - self._interval_ms), 1)
