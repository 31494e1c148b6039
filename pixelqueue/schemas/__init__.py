# Pydantic schemas package
from pixelqueue.schemas.job import (
    SubmitResponse, JobResponse, PendingResponse, StaleJob, StaleJobsResponse
)
from pixelqueue.schemas.queue import QueueMessage

__all__ = [
    "SubmitResponse", "JobResponse", "PendingResponse", "StaleJob", "StaleJobsResponse",
    "QueueMessage",
]
