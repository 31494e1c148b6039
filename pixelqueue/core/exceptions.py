"""
Error Taxonomy
Exceptions shared by the API, the job store, the queue and the workers.

Every error carries a ``retryable`` flag: the worker only retries operations
whose failure is transient (store writes, queue connectivity). Image decode and
transform failures are always terminal for the job.
"""

from typing import Optional


class PixelQueueError(Exception):
    """Base exception for all PixelQueue errors."""

    retryable = False

    def __init__(self, message: str, retryable: Optional[bool] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}


class ValidationError(PixelQueueError):
    """Bad action name or malformed/out-of-range parameters."""


# --- Job store ---

class StoreError(PixelQueueError):
    """Durable write or read against the job store failed."""

    retryable = True


class JobNotFoundError(PixelQueueError):
    """No job record exists for the given id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
        self.job_id = job_id


class TerminalStateError(PixelQueueError):
    """A transition was attempted on a COMPLETED or FAILED job."""

    def __init__(self, job_id: str, status: str, requested: str):
        super().__init__(
            f"Job {job_id} is already {status}; refusing transition to {requested}",
            details={"job_id": job_id, "status": status, "requested": requested},
        )
        self.job_id = job_id
        self.status = status


class InvalidTransitionError(PixelQueueError):
    """The requested status edge is not part of the job lifecycle."""


# --- Dispatch queue ---

class QueueError(PixelQueueError):
    """Transient connectivity problem with the dispatch queue."""

    retryable = True


class MessageFormatError(QueueError):
    """A queue message could not be parsed."""

    retryable = False


class OrphanedJobError(QueueError):
    """The job record exists but its queue message could not be produced."""

    retryable = False

    def __init__(self, job_id: str, cause: Exception):
        super().__init__(
            f"Job {job_id} was recorded but could not be queued: {cause}",
            details={"job_id": job_id},
        )
        self.job_id = job_id


# --- Image processing ---

class DecodeError(PixelQueueError):
    """Input bytes are missing or are not a decodable image."""


class TransformError(PixelQueueError):
    """The transform itself failed on a decodable image."""


class StorageError(PixelQueueError):
    """Reading or writing an artifact on disk failed."""


# --- Retrieval ---

class ArtifactPendingError(PixelQueueError):
    """The job has not finished yet."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is not completed yet. Current status: {status}")
        self.job_id = job_id
        self.status = status


class ArtifactFailedError(PixelQueueError):
    """The job failed, so it never produced an artifact."""

    def __init__(self, job_id: str, error_message: Optional[str]):
        super().__init__(f"Job {job_id} failed: {error_message}")
        self.job_id = job_id
        self.error_message = error_message


class ArtifactMissingError(PixelQueueError):
    """The job is COMPLETED but its artifact is not on disk."""

    def __init__(self, job_id: str, path: str):
        super().__init__(f"Processed file for job {job_id} not found on disk")
        self.job_id = job_id
        self.path = path


__all__ = [
    "PixelQueueError",
    "ValidationError",
    "StoreError",
    "JobNotFoundError",
    "TerminalStateError",
    "InvalidTransitionError",
    "QueueError",
    "MessageFormatError",
    "OrphanedJobError",
    "DecodeError",
    "TransformError",
    "StorageError",
    "ArtifactPendingError",
    "ArtifactFailedError",
    "ArtifactMissingError",
]
