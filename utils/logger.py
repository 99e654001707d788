"""
Structured logging for the status monitor.

Why structlog?
  - Event names + key/value context ("worker_evicted", worker_id=3) are
    easy to grep and to ship as JSON to a log aggregator.
  - Human-readable console output for local dev.
  - Bound loggers cost nothing when the level is above threshold, which
    matters because request tracking sits on every request's path.

In a multi-process deployment each worker binds its identity once
(bind_worker) and every subsequent line carries worker_id and pid.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable

import structlog

# Per-request access logs drown out monitor events when a dashboard polls
# the status endpoint every second.
_QUIET_LOGGERS = ("uvicorn.access", "gunicorn.access")


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    quiet: Iterable[str] = _QUIET_LOGGERS,
) -> None:
    """
    Call once at process startup. Configures both stdlib logging
    and structlog in one shot; records from stdlib loggers (uvicorn,
    gunicorn) go through the same processors as our own events.
    """
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_worker(worker_id: int, pid: int) -> None:
    """Attach the worker identity to every log line from this process."""
    structlog.contextvars.bind_contextvars(worker_id=worker_id, pid=pid)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named, bound logger. Use this everywhere."""
    return structlog.get_logger(name)
