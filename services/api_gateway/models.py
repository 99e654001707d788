"""
Response models for the status endpoint.

The snapshot and chart models are reused as-is; FastAPI serializes them
with their camelCase aliases.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel

from services.monitor_service.models import MetricDataPoint, MetricsSnapshot


class StatusResponse(BaseModel):
    """Payload polled by a dashboard: one snapshot plus the chart series."""

    title: str
    uptime_human: str
    snapshot: MetricsSnapshot
    charts: Dict[str, List[MetricDataPoint]]
