#!/usr/bin/env python3
"""
Worker Startup Script
Starts image-processing workers that consume the dispatch queue.

Usage:
    python scripts/run_workers.py                    # One worker
    python scripts/run_workers.py --workers 4        # 4 worker processes
    python scripts/run_workers.py --sweep            # Orphan sweeper only
    python scripts/run_workers.py --check            # Check Redis/DB and exit
"""

import argparse
import logging
import os
import signal
import sys
import threading
from multiprocessing import Process
from typing import List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pixelqueue.core.config import get_settings
from pixelqueue.core.container import Container
from pixelqueue.core.exceptions import QueueError, StoreError
from pixelqueue.core.logging import configure_logging
from pixelqueue.workers import OrphanSweeper, WorkerPipeline, with_retry

logger = logging.getLogger("pixelqueue.worker")

# Workers usually start alongside Redis/Postgres; give them time to come up
STARTUP_RETRIES = 15
STARTUP_RETRY_DELAY = 2.0


@with_retry(
    max_retries=STARTUP_RETRIES,
    retry_delay=STARTUP_RETRY_DELAY,
    max_delay=STARTUP_RETRY_DELAY * 1.5,
)
def wait_for_services(container: Container) -> None:
    """Block until both Redis and the job store answer."""
    redis_health = container.redis.health_check()
    if not redis_health.get("connected"):
        raise QueueError(f"Redis not reachable at {redis_health.get('url')}: {redis_health.get('error')}")

    db_health = container.database.health_check()
    if db_health["status"] != "ok":
        raise StoreError(f"Database not reachable: {db_health.get('error')}")

    logger.info(f"Redis connected: {redis_health.get('redis_version')}")


def install_signal_handlers(stop_event: threading.Event, worker_name: str) -> None:
    """Stop after the current job on SIGTERM/SIGINT."""
    def signal_handler(signum, frame):
        logger.info(f"{worker_name}: Received shutdown signal")
        stop_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def start_worker(worker_name: str, max_messages: Optional[int] = None):
    """
    Run a single worker loop in this process.

    Args:
        worker_name: Worker identifier (also names its processing list)
        max_messages: Exit after this many messages (burst mode)
    """
    settings = get_settings()
    stop_event = threading.Event()
    install_signal_handlers(stop_event, worker_name)

    container = Container.build(settings, worker_name=worker_name)
    try:
        wait_for_services(container)
        pipeline = WorkerPipeline(
            container.queue,
            container.job_store,
            container.storage,
            container.registry,
            name=worker_name,
            jpeg_quality=settings.OUTPUT_JPEG_QUALITY,
            store_retries=settings.STORE_RETRY_ATTEMPTS,
            store_retry_delay=settings.STORE_RETRY_DELAY,
        )
        logger.info(f"Worker {worker_name} starting on queue: {settings.QUEUE_NAME}")
        pipeline.run(stop_event=stop_event, max_messages=max_messages)
    finally:
        container.close()


def start_sweeper():
    """Run the orphan sweeper in this process."""
    settings = get_settings()
    stop_event = threading.Event()
    install_signal_handlers(stop_event, "sweeper")

    container = Container.build(settings, worker_name="sweeper")
    try:
        wait_for_services(container)
        sweeper = OrphanSweeper(
            container.job_store,
            container.queue,
            min_age_seconds=settings.ORPHAN_MIN_AGE_SECONDS,
        )
        sweeper.run(settings.ORPHAN_SWEEP_INTERVAL, stop_event=stop_event)
    finally:
        container.close()


def run_worker_process(process_id: int, max_messages: Optional[int] = None):
    """Target function for worker processes."""
    configure_logging(get_settings().LOG_LEVEL)
    start_worker(f"worker-{process_id}", max_messages)


def main():
    parser = argparse.ArgumentParser(description="Start PixelQueue image workers")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)"
    )
    parser.add_argument(
        "--burst", "-b",
        type=int,
        default=None,
        metavar="N",
        help="Exit after each worker has handled N messages"
    )
    parser.add_argument(
        "--sweep",
        action="store_true",
        help="Run the orphan sweeper instead of workers"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check Redis and database connections and exit"
    )

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    # Health check only
    if args.check:
        container = Container.build(settings)
        try:
            redis_health = container.redis.health_check()
            db_health = container.database.health_check()
        finally:
            container.close()
        print(f"Redis Status: {redis_health}")
        print(f"Database Status: {db_health}")
        sys.exit(0 if redis_health.get("connected") and db_health["status"] == "ok" else 1)

    if args.sweep:
        start_sweeper()
        return

    logger.info(f"Starting {args.workers} worker(s) on queue: {settings.QUEUE_NAME}")

    if args.workers == 1:
        # Single worker - run directly
        start_worker("worker-main", args.burst)
        return

    # Multiple workers - spawn processes; each builds its own container
    processes: List[Process] = []

    def shutdown_all(signum, frame):
        logger.info("Shutting down all workers...")
        for p in processes:
            if p.is_alive():
                p.terminate()

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    for i in range(args.workers):
        p = Process(
            target=run_worker_process,
            args=(i + 1, args.burst),
            name=f"worker-{i + 1}"
        )
        p.start()
        processes.append(p)
        logger.info(f"Started worker process {i + 1}/{args.workers} (PID: {p.pid})")

    # Wait for all workers
    for p in processes:
        p.join()


if __name__ == "__main__":
    main()
