"""
Statement worker.

Runs one delivery of a queued job: extraction, structuring and the job status
writes around them. The Celery task decides when to re-deliver based on the
returned outcome; this module holds no queue state of its own.
"""
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from banksheet.config import Settings, get_settings
from banksheet.exceptions import FatalProcessingError, PayloadIntegrityError
from banksheet.models.job import JobStatus
from banksheet.queue import QueueMessage, file_hash
from banksheet.services.document_extractor import DocumentExtractor
from banksheet.services.job_store import JobStore
from banksheet.services.structuring import StructuringService

logger = structlog.get_logger(__name__)


class Outcome(str, Enum):
    """Result of a single delivery."""
    SUCCEEDED = "succeeded"
    RETRY = "retry"
    DEAD = "dead"


@dataclass
class WorkerOutcome:
    outcome: Outcome
    attempt: int
    retry_delay: Optional[float] = None
    error: Optional[str] = None


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Exponential delay before the delivery after ``attempt``."""
    return base_seconds * (2 ** (attempt - 1))


class StatementWorker:
    """Processes queue messages against the job store."""

    def __init__(
        self,
        store: JobStore,
        extractor: DocumentExtractor,
        structurer: StructuringService,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.structurer = structurer
        self.settings = settings or get_settings()

    @property
    def max_attempts(self) -> int:
        return self.settings.max_attempts

    def process(self, message: QueueMessage, attempt: int) -> WorkerOutcome:
        """
        Process one delivery of ``message``.

        Args:
            message: Queued job.
            attempt: 1-based delivery number.

        Returns:
            WorkerOutcome telling the caller whether to re-deliver.
        """
        job_id = message.job_id
        log = logger.bind(job_id=job_id, attempt=attempt, file_type=message.file_type)

        job = self.store.find(job_id)
        if job is None or job.status == JobStatus.FAILED:
            log.warning("statement_processing_skipped", status=job.status.value if job else None)
            return WorkerOutcome(Outcome.DEAD, attempt, error="JOB_NOT_PROCESSABLE")

        self.store.mark_processing(job_id, attempt)
        log.info("statement_processing_started")

        try:
            data = self._payload(message)
            extraction = self.extractor.extract(data, message.file_type)
            self.store.update_progress(job_id, 0.5)

            result = self.structurer.structure(
                extraction.content,
                message.file_type,
                table=extraction.table,
            )
            self.store.update_progress(job_id, 0.9)

            preview = result.to_preview(message.file_type)
            preview["metadata"] = extraction.metadata
            self.store.mark_completed(job_id, preview, result.confidence_score)

        except FatalProcessingError as e:
            log.warning("statement_processing_rejected", error_code=e.error_code, error=e.message)
            self._fail(job_id, e.error_code, e.message)
            return WorkerOutcome(Outcome.DEAD, attempt, error=e.error_code)

        except Exception as e:
            log.error("statement_processing_failed", error=str(e), error_type=type(e).__name__)
            self.store.rollback()
            if attempt < self.max_attempts:
                delay = backoff_delay(attempt, self.settings.retry_backoff_seconds)
                return WorkerOutcome(Outcome.RETRY, attempt, retry_delay=delay, error=type(e).__name__)

            self._fail(job_id, "PROCESSING_FAILED", "File processing failed")
            return WorkerOutcome(Outcome.DEAD, attempt, error=type(e).__name__)

        log.info(
            "statement_processing_completed",
            confidence=result.confidence_score,
            source=result.source,
            rows=len(result.rows),
        )
        return WorkerOutcome(Outcome.SUCCEEDED, attempt)

    def _fail(self, job_id: str, error_code: str, message: str) -> None:
        # A re-delivery that breaks must not take away an earlier good result
        job = self.store.get(job_id)
        if job.status == JobStatus.COMPLETED:
            logger.warning("redelivery_failed_after_completion", job_id=job_id, error_code=error_code)
            return
        self.store.mark_failed(job_id, error_code, message)

    def _payload(self, message: QueueMessage) -> bytes:
        try:
            data = message.file_bytes()
        except (binascii.Error, ValueError) as e:
            raise PayloadIntegrityError(message.job_id) from e
        if file_hash(data) != message.file_hash:
            raise PayloadIntegrityError(message.job_id)
        return data
