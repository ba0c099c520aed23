"""
Processing queue client.

Intake talks to the queue only through ``ProcessingQueue``. The application
creates one client at startup, connects it, and closes it on shutdown; tests
inject their own implementation through ``app.state.queue``.
"""
import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from celery import Celery

from banksheet.exceptions import QueueUnavailableError

logger = structlog.get_logger(__name__)

PROCESS_STATEMENT_TASK = "banksheet.tasks.statement_tasks.process_statement"


def file_hash(data: bytes) -> str:
    """SHA-256 hex digest used to check queued payloads."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class QueueMessage:
    """Everything a worker needs to process one job."""

    job_id: str
    file_type: str
    file_b64: str
    file_hash: str
    file_name: Optional[str] = None
    user_email: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def for_upload(
        cls,
        job_id: str,
        file_type: str,
        data: bytes,
        file_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> "QueueMessage":
        return cls(
            job_id=job_id,
            file_type=file_type,
            file_b64=base64.b64encode(data).decode("ascii"),
            file_hash=file_hash(data),
            file_name=file_name,
            user_email=user_email,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    def file_bytes(self) -> bytes:
        return base64.b64decode(self.file_b64)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "fileType": self.file_type,
            "fileBytes": self.file_b64,
            "fileHash": self.file_hash,
            "fileName": self.file_name,
            "userEmail": self.user_email,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueMessage":
        return cls(
            job_id=data["jobId"],
            file_type=data["fileType"],
            file_b64=data["fileBytes"],
            file_hash=data["fileHash"],
            file_name=data.get("fileName"),
            user_email=data.get("userEmail"),
            created_at=data.get("createdAt"),
        )


class ProcessingQueue(ABC):
    """Queue client used by intake."""

    @abstractmethod
    def connect(self) -> None:
        """Open broker connections. Called once at process start."""

    @abstractmethod
    def enqueue(self, message: QueueMessage) -> None:
        """
        Submit a job for processing.

        Raises:
            QueueUnavailableError: If the broker did not accept the message.
        """

    @abstractmethod
    def close(self) -> None:
        """Flush pending publishes and release connections."""


class CeleryProcessingQueue(ProcessingQueue):
    """ProcessingQueue backed by a Celery broker."""

    def __init__(self, app: Celery, queue_name: str = "statement_processing"):
        self.app = app
        self.queue_name = queue_name
        self._connection = None

    def connect(self) -> None:
        try:
            self._connection = self.app.connection_for_write()
            self._connection.ensure_connection(max_retries=3)
        except Exception as e:
            # Intake will report QUEUE_UNAVAILABLE per request until the
            # broker comes back.
            logger.error("queue_connect_failed", error=str(e))
            self._release()
            return
        logger.info("queue_connected", queue=self.queue_name)

    def enqueue(self, message: QueueMessage) -> None:
        try:
            # Using the job id as task id keeps one logical message per job
            self.app.send_task(
                PROCESS_STATEMENT_TASK,
                args=[message.to_dict()],
                task_id=message.job_id,
                queue=self.queue_name,
                connection=self._connection,
            )
        except Exception as e:
            logger.error("failed_to_queue_job", job_id=message.job_id, error=str(e))
            raise QueueUnavailableError() from e

        logger.info("job_queued", job_id=message.job_id, queue=self.queue_name)

    def close(self) -> None:
        self._release()
        logger.info("queue_closed", queue=self.queue_name)

    def _release(self) -> None:
        if self._connection is not None:
            self._connection.release()
            self._connection = None
