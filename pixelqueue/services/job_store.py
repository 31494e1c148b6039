"""
Job Store Service
Durable system of record for job identity and lifecycle.

Transitions follow QUEUED -> PROCESSING -> {COMPLETED | FAILED}. A terminal
record is never written again: the UPDATE itself is guarded on the status
column, so a finalize racing another finalize loses with TerminalStateError
instead of overwriting.

Known limitation: concurrent non-terminal writes on the same job (e.g. two
workers both marking PROCESSING after a duplicate delivery) are last write
wins. No optimistic-lock error is raised for them.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from pixelqueue.core.database import Database
from pixelqueue.core.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    StoreError,
    TerminalStateError,
)
from pixelqueue.models.job import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, Job, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """Service for creating, reading and transitioning job records."""

    def __init__(self, database: Database):
        self.db = database

    def create(self, input_path: str, action: str, params: Optional[str] = None) -> str:
        """
        Insert a new QUEUED job.

        Returns:
            The new job id

        Raises:
            StoreError: the record could not be persisted (no job exists)
        """
        job_id = str(uuid.uuid4())
        now = datetime.utcnow()
        try:
            with self.db.session_scope() as session:
                session.add(Job(
                    id=job_id,
                    status=JobStatus.QUEUED.value,
                    input_path=input_path,
                    action=action,
                    params=params or None,
                    created_at=now,
                    updated_at=now,
                ))
        except SQLAlchemyError as e:
            logger.error(f"Error inserting job into database: {e}")
            raise StoreError(f"Failed to record job in database: {e}") from e

        logger.info(f"Created job {job_id} (action: {action}, params: '{params or ''}')")
        return job_id

    def get(self, job_id: str) -> Job:
        """
        Fetch a job snapshot.

        Raises:
            JobNotFoundError: unknown id
            StoreError: database unavailable
        """
        try:
            with self.db.session_scope() as session:
                job = session.get(Job, job_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read job {job_id}: {e}") from e

        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def transition(self, job_id: str, new_status: JobStatus, result: Optional[str] = None) -> Job:
        """
        Move a job to ``new_status``.

        Args:
            job_id: Job to update
            new_status: Target status
            result: Output path for COMPLETED, diagnostic message for FAILED

        Returns:
            The updated job snapshot

        Raises:
            JobNotFoundError: unknown id
            TerminalStateError: job is already COMPLETED or FAILED
            InvalidTransitionError: edge not in the lifecycle, or missing result
            StoreError: database write failed (safe to retry)
        """
        new_status = JobStatus(new_status)

        if new_status == JobStatus.COMPLETED and not result:
            raise InvalidTransitionError(f"COMPLETED transition for job {job_id} needs an output path")
        if new_status == JobStatus.FAILED and not (result and result.strip()):
            raise InvalidTransitionError(f"FAILED transition for job {job_id} needs a diagnostic message")
        if new_status == JobStatus.QUEUED:
            raise InvalidTransitionError(f"Job {job_id} cannot be moved back to QUEUED")

        value = result if new_status in TERMINAL_STATUSES else None

        try:
            with self.db.session_scope() as session:
                job = session.get(Job, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)

                current = JobStatus(job.status)
                if current in TERMINAL_STATUSES:
                    raise TerminalStateError(job_id, current.value, new_status.value)
                if new_status not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransitionError(
                        f"Job {job_id}: transition {current.value} -> {new_status.value} is not allowed"
                    )

                now = datetime.utcnow()
                outcome = session.execute(
                    update(Job)
                    .where(Job.id == job_id, Job.status.notin_([s.value for s in TERMINAL_STATUSES]))
                    .values(status=new_status.value, output_path=value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount == 0:
                    # Another writer finalized the job between our read and write
                    session.expire(job)
                    raise TerminalStateError(job_id, session.get(Job, job_id).status, new_status.value)

                session.refresh(job)
        except SQLAlchemyError as e:
            logger.error(f"FAILED to update status for job {job_id} to {new_status.value}: {e}")
            raise StoreError(f"Failed to update job {job_id}: {e}") from e

        logger.info(f"Job {job_id} status updated to {new_status.value}")
        return job

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20, offset: int = 0) -> List[Job]:
        """List jobs, newest first, with an optional status filter."""
        try:
            with self.db.session_scope() as session:
                query = session.query(Job)
                if status:
                    query = query.filter(Job.status == JobStatus(status).value)
                return query.order_by(Job.created_at.desc()).offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list jobs: {e}") from e

    def list_stale(
        self,
        older_than_seconds: int,
        statuses: Iterable[JobStatus] = (JobStatus.QUEUED, JobStatus.PROCESSING),
        limit: int = 500,
    ) -> List[Job]:
        """
        Jobs stuck in a non-terminal state.

        A worker crash between pop and finalize leaves the record frozen in
        QUEUED or PROCESSING; this is how that condition is surfaced.
        """
        cutoff = datetime.utcnow() - timedelta(seconds=older_than_seconds)
        try:
            with self.db.session_scope() as session:
                return (
                    session.query(Job)
                    .filter(Job.status.in_([JobStatus(s).value for s in statuses]))
                    .filter(Job.updated_at < cutoff)
                    .order_by(Job.updated_at.asc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list stale jobs: {e}") from e

    def count_by_status(self) -> Dict[str, int]:
        """Number of jobs per status (every status present, zero if none)."""
        counts = {status.value: 0 for status in JobStatus}
        try:
            with self.db.session_scope() as session:
                rows = session.query(Job.status, func.count(Job.id)).group_by(Job.status).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count jobs: {e}") from e
        for status, count in rows:
            counts[status] = count
        return counts
