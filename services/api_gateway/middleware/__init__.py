"""
Request-tracking middleware.

Architecture decisions:
  1. Every request outside the status mount path is reported to the
     monitor: start before the handler runs, completion after.
  2. Duration uses time.perf_counter() around call_next, so it covers the
     downstream handler and any inner middleware, not the network.
  3. A handler that raises is recorded as a 500 and the exception is
     re-raised untouched; Starlette's error middleware still answers.
  4. Requests under the status path (the dashboard polling itself) are
     never tracked.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from services.monitor_service.monitor import StatusMonitor
from utils.logger import get_logger

_log = get_logger(__name__)


class StatusMonitorMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, monitor: StatusMonitor) -> None:
        super().__init__(app)
        self._monitor = monitor
        self._status_path = monitor.settings.path

    async def dispatch(self, request: Request, call_next: Callable):
        path = request.url.path
        if path.startswith(self._status_path):
            return await call_next(request)

        method = request.method
        self._monitor.on_request_start(path, method)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            self._monitor.on_request_complete(path, method, duration_ms, 500)
            _log.debug("request_failed", path=path, method=method)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        self._monitor.on_request_complete(path, method, duration_ms, response.status_code)
        return response
