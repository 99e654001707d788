"""
FastAPI wiring — how a host application plugs the monitor in.

Architecture decisions:
  1. The monitor is created once and handed to both the middleware and the
     status router; nothing reaches for a global.
  2. The rollover timer is tied to the app lifespan: started on startup,
     stopped on shutdown. Without a lifespan run (e.g. a bare TestClient)
     the monitor still works through lazy rollover.
  3. Status reads are plain JSON. Rendering a dashboard is the caller's
     business.

Usage:
    app = FastAPI(lifespan=monitor_lifespan(monitor))
    attach_status_monitor(app, monitor)
or simply:
    app = create_app()
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from configs.settings import MonitorSettings, get_settings
from services.api_gateway.endpoints import create_status_router
from services.api_gateway.middleware import StatusMonitorMiddleware
from services.monitor_service.monitor import StatusMonitor
from utils.logger import get_logger, setup_logging

_log = get_logger(__name__)


def monitor_lifespan(monitor: StatusMonitor):
    """Lifespan factory: start the rollover timer on startup, stop it on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor.start()
        _log.info("status_monitor_ready", path=monitor.settings.path, cluster_mode=monitor.cluster_mode)
        try:
            yield  # ← Application runs here
        finally:
            monitor.stop()

    return lifespan


def attach_status_monitor(app: FastAPI, monitor: StatusMonitor) -> None:
    """Track every request on app and mount the status endpoints."""
    app.add_middleware(StatusMonitorMiddleware, monitor=monitor)
    app.include_router(create_status_router(monitor))


def create_app(
    monitor: Optional[StatusMonitor] = None,
    settings: Optional[MonitorSettings] = None,
) -> FastAPI:
    """Standalone app exposing only the status endpoints."""
    cfg = settings or get_settings()
    setup_logging(level=cfg.log_level, json_output=cfg.log_json)
    monitor = monitor or StatusMonitor(cfg)

    app = FastAPI(
        title=cfg.title,
        lifespan=monitor_lifespan(monitor),
        default_response_class=ORJSONResponse,
        docs_url="/docs",
        redoc_url=None,
    )
    attach_status_monitor(app, monitor)
    app.state.monitor = monitor
    return app
