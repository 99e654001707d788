"""
Cluster simulation — N worker processes reporting to one coordinator.

Each worker runs its own StatusMonitor, fakes request traffic, and sends a
worker-metrics report over a multiprocessing Pipe on every tick. The
coordinator prints the aggregated view once per second.

Usage:
    python -m scripts.simulate_cluster --workers 3 --seconds 10
"""

from __future__ import annotations

import argparse
import asyncio
import multiprocessing
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from configs.settings import MonitorSettings
from services.cluster_service.channel import PipeChannel
from services.monitor_service.monitor import StatusMonitor
from utils.logger import setup_logging

_PATHS = ["/api/users/{id}", "/api/orders/{id}", "/api/search", "/api/health"]


async def _worker_main(worker_id: int, conn, seconds: float) -> None:
    monitor = StatusMonitor(
        MonitorSettings(cluster_mode=True),
        channel=PipeChannel(conn),
        worker_id=worker_id,
    )
    monitor.start()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    rng = random.Random(worker_id)

    while loop.time() < deadline:
        path = rng.choice(_PATHS).format(id=rng.randint(1, 500))
        monitor.on_request_start(path, "GET")
        duration = rng.expovariate(1 / (20 * worker_id))
        await asyncio.sleep(duration / 1000)
        status = 500 if rng.random() < 0.03 else 200
        monitor.on_request_complete(path, "GET", duration, status)

    monitor.stop()


def _run_worker(worker_id: int, conn, seconds: float) -> None:
    setup_logging(level="WARNING")
    asyncio.run(_worker_main(worker_id, conn, seconds))


async def _coordinator_main(channels, seconds: float) -> None:
    monitor = StatusMonitor(MonitorSettings(cluster_mode=True), worker_id=0)
    for channel in channels:
        monitor.listen(channel)
        channel.attach()

    for _ in range(int(seconds) + 2):
        await asyncio.sleep(1)
        snap = await monitor.snapshot()
        print(
            f"workers={snap.worker_count or 0} rps={snap.rps:.0f} "
            f"total={snap.total_requests} avg_ms={snap.response_time:.2f} "
            f"errors={snap.error_rate:.2f}%"
        )

    for channel in channels:
        channel.close()


def simulate(num_workers: int = 3, seconds: float = 10.0) -> None:
    channels, procs = [], []
    for worker_id in range(1, num_workers + 1):
        parent_conn, child_conn = multiprocessing.Pipe()
        proc = multiprocessing.Process(target=_run_worker, args=(worker_id, child_conn, seconds))
        proc.start()
        channels.append(PipeChannel(parent_conn))
        procs.append(proc)

    try:
        asyncio.run(_coordinator_main(channels, seconds))
    finally:
        for proc in procs:
            proc.join(timeout=5)


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a multi-worker deployment")
    parser.add_argument("--workers", "-w", type=int, default=3)
    parser.add_argument("--seconds", "-s", type=float, default=10.0)
    args = parser.parse_args()

    setup_logging(level="INFO")
    simulate(num_workers=args.workers, seconds=args.seconds)


if __name__ == "__main__":
    main()
