"""
Worker Pipeline
Pops job references from the dispatch queue and drives each job to a
terminal state.

Per message, strictly sequential:
    1. pop (blocks)
    2. QUEUED -> PROCESSING
    3. decode input
    4. look up and apply transform
    5. encode + write output, PROCESSING -> COMPLETED, delete input
    6. on any failure: PROCESSING -> FAILED with a diagnostic, delete input

A single job's failure never ends the loop. FAILED jobs are not retried;
re-running requires a new submission.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from pixelqueue.core.exceptions import (
    DecodeError,
    InvalidTransitionError,
    JobNotFoundError,
    PixelQueueError,
    StoreError,
    TerminalStateError,
)
from pixelqueue.models.job import JobStatus
from pixelqueue.schemas.queue import QueueMessage
from pixelqueue.services.job_store import JobStore
from pixelqueue.services.storage import StorageService
from pixelqueue.services.transforms import TransformRegistry, decode_image, encode_jpeg
from pixelqueue.workers.base import call_with_retry
from pixelqueue.workers.queue import DispatchQueue

logger = logging.getLogger(__name__)


class WorkerPipeline:
    """One sequential worker loop. Run several processes to scale out."""

    def __init__(
        self,
        queue: DispatchQueue,
        job_store: JobStore,
        storage: StorageService,
        registry: TransformRegistry,
        *,
        name: str = "worker-main",
        jpeg_quality: int = 90,
        store_retries: int = 5,
        store_retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.queue = queue
        self.job_store = job_store
        self.storage = storage
        self.registry = registry
        self.name = name
        self.jpeg_quality = jpeg_quality
        self.store_retries = store_retries
        self.store_retry_delay = store_retry_delay
        self._sleep = sleep

    def run(self, stop_event: Optional[threading.Event] = None, max_messages: Optional[int] = None) -> int:
        """
        Main loop.

        Args:
            stop_event: Set to stop after the current job
            max_messages: Stop after handling this many messages

        Returns:
            Number of messages handled
        """
        recovered = self.queue.recover()
        logger.info(f"{self.name} started and listening for tasks on '{self.queue.name}'"
                    + (f" ({recovered} recovered)" if recovered else ""))

        handled = 0
        while not (stop_event and stop_event.is_set()):
            if max_messages is not None and handled >= max_messages:
                break

            message = self.queue.pop(stop_event)
            if message is None:
                break

            try:
                self.handle(message)
            except Exception:
                # handle() isolates job errors; this guards the loop against bugs
                logger.exception(f"[ERROR] Unhandled error for job {message.job_id}")
            finally:
                self.queue.ack(message)
            handled += 1

        logger.info(f"{self.name} stopped after {handled} message(s)")
        return handled

    def _transition(self, job_id: str, status: JobStatus, result: Optional[str] = None):
        return call_with_retry(
            self.job_store.transition,
            job_id,
            status,
            result,
            max_retries=self.store_retries,
            retry_delay=self.store_retry_delay,
            retryable_exceptions=(StoreError,),
            sleep=self._sleep,
        )

    def handle(self, message: QueueMessage) -> Optional[JobStatus]:
        """
        Process one message end to end.

        Returns:
            The terminal status written, or None if the job was skipped or
            its final status could not be recorded
        """
        job_id = message.job_id
        start_time = datetime.utcnow()
        logger.info(f"[START] job {job_id} | action: {message.action}, params: '{message.params}'")

        try:
            self._transition(job_id, JobStatus.PROCESSING)
        except JobNotFoundError:
            logger.error(f"[SKIP] job {job_id}: no store record for queued message")
            return None
        except (TerminalStateError, InvalidTransitionError) as e:
            logger.warning(f"[SKIP] job {job_id}: duplicate delivery ({e})")
            return None
        except StoreError as e:
            logger.error(f"[STUCK] job {job_id}: could not mark PROCESSING, record stays QUEUED: {e}")
            return None

        try:
            output_path = self._execute(message)
        except PixelQueueError as e:
            return self._fail(message, e.message, start_time)
        except Exception as e:
            logger.exception(f"[ERROR] job {job_id}: unexpected failure")
            return self._fail(message, f"unexpected error during {message.action}: {e}", start_time)

        try:
            self._transition(job_id, JobStatus.COMPLETED, output_path)
        except TerminalStateError as e:
            try:
                recorded = self.job_store.get(job_id).result_path
            except PixelQueueError as read_error:
                logger.error(f"[STUCK] job {job_id}: final record unreadable, keeping {output_path}: {read_error}")
                return None
            if recorded != output_path:
                logger.warning(f"[SKIP] job {job_id}: finalized elsewhere ({e}); discarding our output")
                self.storage.delete(output_path)
                return None
            # An earlier attempt of this same write committed; only its reply was lost
            logger.info(f"job {job_id}: COMPLETED already recorded with our output")
        except PixelQueueError as e:
            logger.error(f"[STUCK] job {job_id}: output at {output_path} but COMPLETED not recorded: {e}")
            return None

        self._cleanup_input(message)
        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"[COMPLETE] job {job_id} | Duration: {duration:.2f}s | Output: {output_path}")
        return JobStatus.COMPLETED

    def _execute(self, message: QueueMessage) -> str:
        """Decode, transform, encode and persist. Returns the output path."""
        # Fail fast on unknown actions before touching the input
        self.registry.get(message.action)

        try:
            data = self.storage.read_bytes(message.input_path)
        except PixelQueueError as e:
            raise DecodeError(f"file not found at {message.input_path}: {e}") from e

        image = decode_image(data)
        result = self.registry.apply(message.action, image, message.params)
        encoded = encode_jpeg(result, quality=self.jpeg_quality)

        output_path = self.storage.output_path_for(message.job_id, message.action)
        self.storage.write_bytes(output_path, encoded)
        logger.info(f"Image successfully processed and saved to: {output_path}")
        return output_path

    def _fail(self, message: QueueMessage, diagnostic: str, start_time: datetime) -> Optional[JobStatus]:
        job_id = message.job_id
        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.error(f"[ERROR] job {job_id} | Duration: {duration:.2f}s | Error: {diagnostic}")

        try:
            self._transition(job_id, JobStatus.FAILED, diagnostic or "unknown error")
        except TerminalStateError as e:
            logger.warning(f"[SKIP] job {job_id}: finalized elsewhere ({e})")
            return None
        except PixelQueueError as e:
            logger.error(f"[STUCK] job {job_id}: FAILED not recorded: {e}")
            return None

        self._cleanup_input(message)
        return JobStatus.FAILED

    def _cleanup_input(self, message: QueueMessage) -> None:
        if not self.storage.delete(message.input_path):
            logger.warning(f"Warning: input file {message.input_path} for job {message.job_id} was not removed")


__all__ = ["WorkerPipeline"]
