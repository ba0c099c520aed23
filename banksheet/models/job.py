"""
Processing job model.

One row per uploaded statement. The row is the single source of truth for the
job's status; the tagged ``state`` view is what the rest of the code reads.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Float, Integer, String, Text
from sqlalchemy.sql import func

from banksheet.database import Base
from banksheet.exceptions import InvalidJobTransitionError
from banksheet.models.types import JSONDocument


class JobStatus(str, Enum):
    """Job status enumeration."""
    UPLOADED = "uploaded"      # Job created, waiting for worker
    PROCESSING = "processing"  # Worker picked up the job
    COMPLETED = "completed"    # Preview available (and possibly paid)
    FAILED = "failed"          # Extraction failed or payment expired


# Allowed (from, to) status changes
ALLOWED_TRANSITIONS = {
    JobStatus.UPLOADED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.FAILED: {JobStatus.COMPLETED},
}


def generate_job_id() -> str:
    """New opaque job handle. Hex only, so it never contains the '_' delimiter."""
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Uploaded:
    """Accepted at intake, not yet picked up."""
    created_at: Optional[datetime]


@dataclass(frozen=True)
class Processing:
    """A worker is (or was last) working on the job."""
    progress: float
    attempts: int


@dataclass(frozen=True)
class Completed:
    """Extraction finished; preview and confidence are trustworthy."""
    preview: Dict[str, Any]
    confidence: float


@dataclass(frozen=True)
class Failed:
    """Terminal failure. Any stale preview on the row must not be used."""
    reason: str
    message: Optional[str] = None


JobState = Union[Uploaded, Processing, Completed, Failed]


class ProcessingJob(Base):
    """Statement conversion job."""

    __tablename__ = "processing_jobs"

    job_id = Column(String(64), primary_key=True, default=generate_job_id)
    status = Column(
        SQLEnum(JobStatus, values_callable=lambda e: [m.value for m in e]),
        default=JobStatus.UPLOADED,
        nullable=False,
        index=True,
    )

    # Intake
    file_type = Column(String(255), nullable=False)
    file_name = Column(String(512), nullable=True)
    user_email = Column(String(320), nullable=True)

    # Result
    preview_data = Column(JSONDocument, nullable=True)
    confidence_score = Column(Float, nullable=True)

    # Progress and retry tracking
    progress = Column(Float, default=0.0, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    error_code = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<ProcessingJob {self.job_id} status={self.status}>"

    @property
    def state(self) -> JobState:
        """Tagged view of the row for the current status."""
        if self.status == JobStatus.COMPLETED:
            return Completed(preview=self.preview_data or {}, confidence=float(self.confidence_score or 0.0))
        if self.status == JobStatus.FAILED:
            return Failed(reason=self.error_code or "PROCESSING_FAILED", message=self.error_message)
        if self.status == JobStatus.PROCESSING:
            return Processing(progress=self.progress or 0.0, attempts=self.attempts or 0)
        return Uploaded(created_at=self.created_at)

    def _transition(self, target: JobStatus) -> None:
        current = JobStatus(self.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobTransitionError(self.job_id, current.value, target.value)
        self.status = target

    def update_progress(self, progress: float) -> None:
        """Update job progress."""
        self.progress = min(max(progress, 0.0), 1.0)

    def mark_processing(self, attempt: int) -> None:
        """Record a worker delivery. A completed job keeps its status."""
        self.attempts = attempt
        if self.status == JobStatus.COMPLETED:
            return
        self._transition(JobStatus.PROCESSING)
        self.progress = 0.0
        if self.started_at is None:
            self.started_at = _utcnow()

    def mark_completed(self, preview_data: Dict[str, Any], confidence_score: float) -> None:
        """Store the preview and mark the job completed."""
        self._transition(JobStatus.COMPLETED)
        self.preview_data = preview_data
        self.confidence_score = confidence_score
        self.progress = 1.0
        self.error_code = None
        self.error_message = None
        self.completed_at = _utcnow()

    def mark_failed(self, error_code: str, error_message: Optional[str] = None) -> None:
        """Mark job as failed."""
        self._transition(JobStatus.FAILED)
        self.error_code = error_code
        self.error_message = error_message
        self.completed_at = _utcnow()

    def mark_paid(self) -> None:
        """Payment confirmed: a job holding a preview becomes completed again."""
        self._transition(JobStatus.COMPLETED)
        self.error_code = None
        self.error_message = None
        self.progress = 1.0
