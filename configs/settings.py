"""
Centralized configuration — loaded once at process startup.

Why a single settings module?
  - The monitor, the cluster layer and the HTTP adapter read the same knobs.
  - Pydantic validates types at import time so we fail fast on bad config.
  - No scattered os.getenv() calls across the codebase.

Every field is optional. Environment variables use the STATUS_MONITOR_
prefix, nested fields use "__" (e.g. STATUS_MONITOR_ALERTS__CPU=70).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class AlertThresholds(BaseModel):
    """Per-metric alert thresholds. A flag fires when value > threshold."""

    cpu: float = Field(default=80.0, description="CPU percent")
    memory: float = Field(default=90.0, description="System memory percent")
    response_time_ms: float = Field(default=500.0, description="Interval-average response time")
    error_rate_pct: float = Field(default=5.0, description="Errors / total requests * 100")
    event_loop_lag_ms: float = Field(default=100.0, description="Tick lag beyond the update interval")


class MonitorSettings(BaseSettings):
    """Validated monitor settings from environment."""

    # ── Mounting ────────────────────────────────────────────
    path: str = Field(default="/status", description="Status mount path, never tracked")
    title: str = Field(default="Server Status")

    # ── Collection ──────────────────────────────────────────
    update_interval_ms: int = Field(default=1000, ge=1, description="Rollover tick period")
    retention_seconds: int = Field(default=60, ge=1, description="Rolling history window")
    max_recent_errors: int = Field(default=10, ge=0)
    max_routes: int = Field(default=10, ge=1, description="Length of each ranked route list")
    sample_buffer_cap: int = Field(default=1000, ge=1, description="Raw latency samples kept for percentiles")
    sample_buffer_keep: int = Field(default=500, ge=1, description="Samples retained once the cap is exceeded")

    # ── Alerts ──────────────────────────────────────────────
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)

    # ── Cluster ─────────────────────────────────────────────
    cluster_mode: Optional[bool] = Field(default=None, description="None = auto-detect")
    worker_timeout_ms: int = Field(default=10_000, ge=1, description="Drop worker reports older than this")

    # ── Capabilities ────────────────────────────────────────
    reduced_mode: Optional[bool] = Field(default=None, description="None = probe psutil at startup")

    # ── Logging ─────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    class Config:
        env_prefix = "STATUS_MONITOR_"
        env_nested_delimiter = "__"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache(maxsize=1)
def get_settings() -> MonitorSettings:
    """
    Singleton accessor — parsed once and cached for the process lifetime.
    Import this wherever you need config:
        from configs.settings import get_settings
        cfg = get_settings()
    """
    return MonitorSettings()
