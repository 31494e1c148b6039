"""
Status/Retrieval Service
Read-only queries against the job store and the artifact on disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from pixelqueue.core.exceptions import (
    ArtifactFailedError,
    ArtifactMissingError,
    ArtifactPendingError,
)
from pixelqueue.models.job import Job, JobStatus
from pixelqueue.services.job_store import JobStore
from pixelqueue.services.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """A completed job's output file."""
    job_id: str
    path: str
    filename: str
    media_type: str = "image/jpeg"


class RetrievalService:
    """Answers status polls and artifact downloads."""

    def __init__(self, job_store: JobStore, storage: StorageService):
        self.job_store = job_store
        self.storage = storage

    def get_status(self, job_id: str) -> Job:
        """Current snapshot; raises JobNotFoundError for unknown ids."""
        return self.job_store.get(job_id)

    def get_artifact(self, job_id: str) -> Artifact:
        """
        Locate the output of a COMPLETED job.

        Raises:
            JobNotFoundError: unknown id
            ArtifactPendingError: QUEUED or PROCESSING
            ArtifactFailedError: FAILED, no artifact will ever exist
            ArtifactMissingError: COMPLETED but the file is gone
        """
        job = self.job_store.get(job_id)
        status = JobStatus(job.status)

        if status == JobStatus.FAILED:
            raise ArtifactFailedError(job_id, job.error_message)
        if status != JobStatus.COMPLETED or not job.result_path:
            raise ArtifactPendingError(job_id, status.value)

        path = job.result_path
        if not self.storage.exists(path):
            logger.error(f"Consistency anomaly: job {job_id} is COMPLETED but {path} is not on disk")
            raise ArtifactMissingError(job_id, path)

        return Artifact(job_id=job_id, path=path, filename=Path(path).name)
