"""
Orphan Sweeper
Re-enqueues QUEUED jobs whose queue message was never produced or was lost.

An orphan appears when the store insert succeeds and the push fails, or when
a worker dies right after a destructive pop. Jobs younger than the minimum
age are left alone so a message that is merely in transit is not doubled.
If a duplicate does slip through, the store's transition rules absorb it.
"""

import logging
import threading
from typing import List, Optional

from pixelqueue.core.exceptions import PixelQueueError
from pixelqueue.models.job import JobStatus
from pixelqueue.schemas.queue import QueueMessage
from pixelqueue.services.job_store import JobStore
from pixelqueue.workers.queue import DispatchQueue

logger = logging.getLogger(__name__)


class OrphanSweeper:
    """Periodic reconciliation of QUEUED records against queue contents."""

    def __init__(self, job_store: JobStore, queue: DispatchQueue, min_age_seconds: int = 300):
        self.job_store = job_store
        self.queue = queue
        self.min_age_seconds = min_age_seconds

    def sweep(self) -> List[str]:
        """
        One reconciliation pass.

        Returns:
            Ids of the jobs that were re-enqueued
        """
        candidates = self.job_store.list_stale(self.min_age_seconds, statuses=(JobStatus.QUEUED,))
        if not candidates:
            return []

        pending = self.queue.pending_job_ids()
        requeued = []
        for job in candidates:
            if job.id in pending:
                continue
            self.queue.push(QueueMessage(
                job_id=job.id,
                input_path=job.input_path,
                action=job.action,
                params=job.params or "",
            ))
            requeued.append(job.id)
            logger.warning(f"[ORPHAN] Re-enqueued job {job.id} (queued since {job.created_at.isoformat()})")

        return requeued

    def run(self, interval_seconds: int, stop_event: Optional[threading.Event] = None) -> None:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set."""
        stop_event = stop_event or threading.Event()
        logger.info(f"Orphan sweeper started (interval: {interval_seconds}s, min age: {self.min_age_seconds}s)")

        while not stop_event.is_set():
            try:
                requeued = self.sweep()
                if requeued:
                    logger.info(f"Orphan sweep re-enqueued {len(requeued)} job(s)")
            except PixelQueueError as e:
                logger.error(f"Orphan sweep failed: {e}")
            stop_event.wait(interval_seconds)

        logger.info("Orphan sweeper stopped")


__all__ = ["OrphanSweeper"]
