"""
Jobs API Routes
Handles job submission, status queries and result downloads.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse

from pixelqueue.api.deps import get_container
from pixelqueue.core.container import Container
from pixelqueue.core.exceptions import (
    ArtifactFailedError,
    ArtifactMissingError,
    ArtifactPendingError,
    JobNotFoundError,
    OrphanedJobError,
    StoreError,
    ValidationError,
)
from pixelqueue.models.job import JobStatus
from pixelqueue.schemas.job import (
    JobResponse,
    PendingResponse,
    StaleJob,
    StaleJobsResponse,
    SubmitResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _download_url(container: Container, job_id: str) -> str:
    return f"{container.settings.API_PREFIX}/jobs/{job_id}/download"


@router.post("", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    image: UploadFile = File(...),
    action: str = Form(...),
    params: Optional[str] = Form(None),
    container: Container = Depends(get_container),
):
    """Upload an image and queue a transformation job."""
    # One byte past the limit is enough to reject an oversized upload
    data = await image.read(container.submission.max_upload_bytes + 1)

    try:
        job_id = container.submission.submit(data, image.filename or "upload", action, params)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
    except OrphanedJobError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "detail": "Failed to queue job, database record created.",
                "job_id": e.job_id,
                "status": JobStatus.QUEUED.value,
            },
        )

    return SubmitResponse(job_id=job_id, status=JobStatus.QUEUED)


@router.get("", response_model=List[JobResponse], response_model_exclude_none=True)
async def list_jobs(
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    container: Container = Depends(get_container),
):
    """List jobs with optional status filter."""
    try:
        jobs = container.job_store.list_jobs(status=job_status, limit=limit, offset=offset)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
    return [JobResponse.from_job(job, _download_url(container, job.id)) for job in jobs]


@router.get("/stale", response_model=StaleJobsResponse)
async def list_stale_jobs(
    older_than: Optional[int] = Query(None, ge=0, description="Seconds since last transition"),
    container: Container = Depends(get_container),
):
    """Jobs stuck in QUEUED or PROCESSING, e.g. lost to a worker crash."""
    threshold = container.settings.STALE_JOB_SECONDS if older_than is None else older_than
    try:
        jobs = container.job_store.list_stale(threshold)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    now = datetime.utcnow()
    stale = [
        StaleJob(
            job_id=job.id,
            status=JobStatus(job.status),
            action=job.action,
            updated_at=job.updated_at,
            age_seconds=round((now - job.updated_at).total_seconds(), 1),
        )
        for job in jobs
    ]
    return StaleJobsResponse(older_than_seconds=threshold, count=len(stale), jobs=stale)


@router.get("/{job_id}", response_model=JobResponse, response_model_exclude_none=True)
async def get_job_status(
    job_id: str,
    container: Container = Depends(get_container),
):
    """Get job status and result."""
    try:
        job = container.retrieval.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    except StoreError as e:
        logger.error(f"Database error getting status: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error reading job status.")

    return JobResponse.from_job(job, _download_url(container, job_id))


@router.get("/{job_id}/download")
async def download_result(
    job_id: str,
    container: Container = Depends(get_container),
):
    """Download the processed image of a COMPLETED job."""
    try:
        artifact = container.retrieval.get_artifact(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    except ArtifactMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Processed file not found on disk.")
    except ArtifactPendingError as e:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=PendingResponse(job_id=job_id, status=JobStatus(e.status), message=e.message).model_dump(mode="json"),
        )
    except ArtifactFailedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except StoreError as e:
        logger.error(f"Database error checking status for download: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error.")

    logger.info(f"Job result {job_id} downloaded: {artifact.filename}")
    return FileResponse(artifact.path, media_type=artifact.media_type, filename=artifact.filename)
