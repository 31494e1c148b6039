# Database models package
from pixelqueue.models.job import Job, JobStatus, TERMINAL_STATUSES, ALLOWED_TRANSITIONS

__all__ = [
    "Job",
    "JobStatus",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
]
