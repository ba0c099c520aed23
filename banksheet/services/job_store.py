"""
Job store service.

Persistent record of each submitted file's lifecycle. Every write touches a
single job row and commits immediately, so callers in different processes
coordinate only through the database.
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from banksheet.exceptions import JobNotFoundError
from banksheet.models.job import JobStatus, ProcessingJob, generate_job_id

logger = structlog.get_logger(__name__)


class JobStore:
    """Reads and single-row writes against ``processing_jobs``."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        file_type: str,
        file_name: Optional[str] = None,
        user_email: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> ProcessingJob:
        """Create a job in ``uploaded`` status."""
        job = ProcessingJob(
            job_id=job_id or generate_job_id(),
            status=JobStatus.UPLOADED,
            file_type=file_type,
            file_name=file_name,
            user_email=user_email,
            progress=0.0,
            attempts=0,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info("job_created", job_id=job.job_id, file_type=file_type)
        return job

    def find(self, job_id: str) -> Optional[ProcessingJob]:
        """Get a job or None."""
        return self.db.query(ProcessingJob).filter(ProcessingJob.job_id == job_id).first()

    def get(self, job_id: str) -> ProcessingJob:
        """Get a job or raise JobNotFoundError."""
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def queue_position(self, job: ProcessingJob) -> int:
        """1-based position among jobs still waiting for a worker."""
        # job_id breaks ties between jobs created at the same instant
        ahead = (
            self.db.query(ProcessingJob)
            .filter(
                ProcessingJob.status == JobStatus.UPLOADED,
                or_(
                    ProcessingJob.created_at < job.created_at,
                    and_(ProcessingJob.created_at == job.created_at, ProcessingJob.job_id < job.job_id),
                ),
            )
            .count()
        )
        return ahead + 1

    def rollback(self) -> None:
        """Discard uncommitted changes after a failed unit of work."""
        self.db.rollback()

    def mark_processing(self, job_id: str, attempt: int) -> ProcessingJob:
        job = self.get(job_id)
        job.mark_processing(attempt)
        self.db.commit()
        logger.info("job_processing", job_id=job_id, attempt=attempt)
        return job

    def update_progress(self, job_id: str, progress: float) -> None:
        """Update job progress. Failures here never abort processing."""
        try:
            job = self.get(job_id)
            job.update_progress(progress)
            self.db.commit()
        except Exception as e:
            logger.error("failed_to_update_job_progress", job_id=job_id, error=str(e))
            self.db.rollback()

    def mark_completed(self, job_id: str, preview_data: Dict[str, Any], confidence_score: float) -> ProcessingJob:
        job = self.get(job_id)
        job.mark_completed(preview_data, confidence_score)
        self.db.commit()
        logger.info(
            "job_completed",
            job_id=job_id,
            confidence=confidence_score,
            rows=len(preview_data.get("rows", [])),
        )
        return job

    def mark_failed(self, job_id: str, error_code: str, error_message: Optional[str] = None) -> ProcessingJob:
        job = self.get(job_id)
        job.mark_failed(error_code, error_message)
        self.db.commit()
        logger.warning("job_failed", job_id=job_id, error_code=error_code)
        return job

    def mark_paid(self, job_id: str) -> ProcessingJob:
        job = self.get(job_id)
        job.mark_paid()
        self.db.commit()
        logger.info("job_paid", job_id=job_id)
        return job
