"""
Cluster environment detection.

A process is treated as a cluster worker when any of these hold:
  - STATUS_MONITOR_WORKER_ID is set (explicit)
  - SERVER_SOFTWARE names gunicorn (pre-fork worker)
  - it was started by multiprocessing (has a parent process)
"""

from __future__ import annotations

import multiprocessing
import os

WORKER_ID_ENV = "STATUS_MONITOR_WORKER_ID"


def is_cluster_worker() -> bool:
    if os.environ.get(WORKER_ID_ENV):
        return True
    if "gunicorn" in os.environ.get("SERVER_SOFTWARE", "").lower():
        return True
    return multiprocessing.parent_process() is not None


def get_worker_id() -> int:
    """
    Explicit STATUS_MONITOR_WORKER_ID if set and numeric, else the pid for
    any cluster worker, else 0 (the coordinator / a standalone process).
    """
    raw = os.environ.get(WORKER_ID_ENV, "")
    if raw.isdigit():
        return int(raw)
    if is_cluster_worker():
        return os.getpid()
    return 0
