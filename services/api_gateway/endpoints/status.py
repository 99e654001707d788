"""
Status endpoints — JSON reads of the monitor, mounted under settings.path.
"""

from __future__ import annotations

from fastapi import APIRouter

from services.api_gateway.models import StatusResponse
from services.monitor_service.models import HealthStatus
from services.monitor_service.monitor import StatusMonitor
from utils.timing import format_uptime


def create_status_router(monitor: StatusMonitor) -> APIRouter:
    """Build the router for one monitor instance."""
    router = APIRouter(prefix=monitor.settings.path.rstrip("/"), tags=["status"])

    @router.get("/api/metrics", response_model=StatusResponse)
    async def metrics() -> StatusResponse:
        """Aggregated snapshot + charts (cluster-wide when clustered)."""
        snapshot = await monitor.snapshot()
        return StatusResponse(
            title=monitor.settings.title,
            uptime_human=format_uptime(snapshot.process_uptime),
            snapshot=snapshot,
            charts=monitor.charts(),
        )

    @router.get("/api/health", response_model=HealthStatus)
    async def health() -> HealthStatus:
        """Run the injected health probe on demand."""
        return await monitor.check_health()

    return router
