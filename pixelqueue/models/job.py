"""
Job Model
Database model for image transformation jobs.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import Column, String, Text, DateTime

from pixelqueue.core.database import Base


class JobStatus(str, Enum):
    """Job lifecycle states."""
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Allowed edges. PROCESSING -> PROCESSING lets a duplicate delivery re-enter
# without an error (last write wins).
ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class Job(Base):
    """Image transformation job."""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True)  # uuid4

    # Status: QUEUED, PROCESSING, COMPLETED, FAILED
    status = Column(String(20), nullable=False, default=JobStatus.QUEUED.value, index=True)

    # Request
    input_path = Column(String(512), nullable=False)
    action = Column(String(50), nullable=False)
    params = Column(String(255), nullable=True)

    # Artifact path when COMPLETED, diagnostic message when FAILED
    output_path = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    @property
    def result_path(self) -> Optional[str]:
        """Artifact path, only for COMPLETED jobs."""
        if self.status == JobStatus.COMPLETED.value:
            return self.output_path
        return None

    @property
    def error_message(self) -> Optional[str]:
        """Diagnostic message, only for FAILED jobs."""
        if self.status == JobStatus.FAILED.value:
            return self.output_path
        return None

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.status} action={self.action}>"
