"""
Job Schemas
Pydantic models for job API requests and responses.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel

from pixelqueue.models.job import JobStatus


class SubmitResponse(BaseModel):
    """Returned by a successful submission."""
    job_id: str
    status: JobStatus = JobStatus.QUEUED


class JobResponse(BaseModel):
    """Schema for job status response."""
    job_id: str
    status: JobStatus
    action: str
    params: Optional[str] = None
    created_at: datetime
    download_url: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_job(cls, job, download_url: Optional[str] = None) -> "JobResponse":
        return cls(
            job_id=job.id,
            status=JobStatus(job.status),
            action=job.action,
            params=job.params or None,
            created_at=job.created_at,
            download_url=download_url if job.status == JobStatus.COMPLETED.value else None,
            error_message=job.error_message,
        )


class PendingResponse(BaseModel):
    """Returned by the download endpoint while the job is still running."""
    job_id: str
    status: JobStatus
    message: str


class StaleJob(BaseModel):
    """A QUEUED or PROCESSING job whose last transition is old."""
    job_id: str
    status: JobStatus
    action: str
    updated_at: datetime
    age_seconds: float


class StaleJobsResponse(BaseModel):
    older_than_seconds: int
    count: int
    jobs: List[StaleJob]
