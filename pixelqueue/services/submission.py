"""
Submission Service
Validates a request, stores the upload, records the job and enqueues it.

Ordering: the store record is committed before the queue message exists, so
no worker can ever pop a message whose job is unknown.
"""

import logging
from typing import Optional

from pixelqueue.core.exceptions import (
    OrphanedJobError,
    QueueError,
    StorageError,
    StoreError,
    ValidationError,
)
from pixelqueue.schemas.queue import QueueMessage
from pixelqueue.services.job_store import JobStore
from pixelqueue.services.storage import StorageService
from pixelqueue.services.transforms import TransformRegistry
from pixelqueue.workers.queue import DispatchQueue

logger = logging.getLogger(__name__)


class SubmissionService:
    """Creates jobs on behalf of API clients."""

    def __init__(
        self,
        job_store: JobStore,
        queue: DispatchQueue,
        storage: StorageService,
        registry: TransformRegistry,
        max_upload_bytes: int = 25 * 1024 * 1024,
    ):
        self.job_store = job_store
        self.queue = queue
        self.storage = storage
        self.registry = registry
        self.max_upload_bytes = max_upload_bytes

    def submit(self, data: bytes, filename: str, action: str, params: Optional[str] = None) -> str:
        """
        Submit a transformation job.

        Returns:
            The new job id (status QUEUED)

        Raises:
            ValidationError: unknown action or unusable upload; nothing stored
            StoreError: upload or record could not be persisted; no job exists
            OrphanedJobError: record exists but the enqueue failed
        """
        # Validate before any durable work
        action = self.registry.get(action).name
        params = (params or "").strip()
        if not data:
            raise ValidationError("Uploaded image is empty")
        if len(data) > self.max_upload_bytes:
            raise ValidationError(
                f"Uploaded image is too large ({len(data)} bytes, limit {self.max_upload_bytes})"
            )

        try:
            input_path = self.storage.save_upload(data, filename)
        except StorageError as e:
            logger.error(f"Error saving upload: {e}")
            raise StoreError(f"Failed to save file on server: {e}") from e

        try:
            job_id = self.job_store.create(input_path, action, params)
        except StoreError:
            self.storage.delete(input_path)
            raise

        try:
            self.queue.push(QueueMessage(
                job_id=job_id,
                input_path=input_path,
                action=action,
                params=params,
            ))
        except QueueError as e:
            # No rollback: the record stays QUEUED and is reported as an orphan
            logger.error(f"[ORPHAN] job {job_id} recorded but not queued: {e}")
            raise OrphanedJobError(job_id, e) from e

        return job_id
