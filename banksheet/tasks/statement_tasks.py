"""
Statement processing background tasks.

Celery task that runs the statement worker for one queued job and turns its
outcome into Celery retries with exponential backoff.
"""
from typing import Any, Dict

import structlog
from celery import shared_task
from sqlalchemy.orm import Session

from banksheet.config import get_settings
from banksheet.database import SessionLocal
from banksheet.queue import PROCESS_STATEMENT_TASK, QueueMessage
from banksheet.services.document_extractor import get_document_extractor
from banksheet.services.job_store import JobStore
from banksheet.services.statement_worker import Outcome, StatementWorker
from banksheet.services.structuring import StructuringService

logger = structlog.get_logger(__name__)


def get_db_session() -> Session:
    """Get a database session for use in Celery tasks."""
    return SessionLocal()


def build_worker(db: Session) -> StatementWorker:
    settings = get_settings()
    return StatementWorker(
        store=JobStore(db),
        extractor=get_document_extractor(),
        structurer=StructuringService.from_settings(settings),
        settings=settings,
    )


@shared_task(bind=True, name=PROCESS_STATEMENT_TASK, acks_late=True)
def process_statement(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract and structure one uploaded statement.

    Args:
        payload: Serialized QueueMessage.

    Returns:
        Dict with the delivery outcome.
    """
    message = QueueMessage.from_dict(payload)
    attempt = self.request.retries + 1
    settings = get_settings()

    db = get_db_session()
    try:
        result = build_worker(db).process(message, attempt)
    finally:
        db.close()

    if result.outcome == Outcome.RETRY:
        logger.info(
            "statement_processing_retry_scheduled",
            job_id=message.job_id,
            attempt=attempt,
            countdown=result.retry_delay,
        )
        raise self.retry(countdown=result.retry_delay, max_retries=settings.max_attempts - 1)

    return {"jobId": message.job_id, "outcome": result.outcome.value, "attempt": attempt}
