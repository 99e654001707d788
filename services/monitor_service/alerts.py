"""
Alert evaluation — compares the latest metric values with thresholds.

evaluate_alerts() is pure. AlertTracker wraps it to log a warning when a
flag turns on, so a sustained breach is logged once, not on every read.
"""

from __future__ import annotations

from typing import Dict, List

from configs.settings import AlertThresholds
from services.monitor_service.models import AlertFlags
from services.monitor_service.system import Capabilities
from utils.logger import get_logger

_log = get_logger(__name__)


def evaluate_alerts(
    thresholds: AlertThresholds,
    *,
    cpu: float = 0.0,
    memory: float = 0.0,
    response_time: float = 0.0,
    error_rate: float = 0.0,
    event_loop_lag: float = 0.0,
    capabilities: Capabilities = Capabilities(),
) -> AlertFlags:
    """Each flag is value > threshold (strict). Unavailable metrics never fire."""
    return AlertFlags(
        cpu=capabilities.system and cpu > thresholds.cpu,
        memory=capabilities.system and memory > thresholds.memory,
        response_time=response_time > thresholds.response_time_ms,
        error_rate=error_rate > thresholds.error_rate_pct,
        event_loop_lag=capabilities.event_loop and event_loop_lag > thresholds.event_loop_lag_ms,
    )


class AlertTracker:
    def __init__(self) -> None:
        self._last = AlertFlags()

    def observe(self, flags: AlertFlags, values: Dict[str, float]) -> List[str]:
        """Record the latest flags; return (and log) the ones that just turned on."""
        raised = [
            name
            for name, on in flags.model_dump().items()
            if on and not getattr(self._last, name)
        ]
        for name in raised:
            _log.warning("alert_raised", metric=name, value=values.get(name))
        self._last = flags
        return raised
