"""
Delivery gate.

Decides at download time whether a job's full workbook may be released, and
regenerates it from the stored preview data when it may.
"""
from dataclasses import dataclass
from typing import Optional, Union

import structlog
from sqlalchemy.orm import Session

from banksheet.config import Settings, get_settings
from banksheet.models.job import Completed
from banksheet.services.excel_builder import StatementWorkbookBuilder, get_workbook_builder
from banksheet.services.job_store import JobStore
from banksheet.services.payment_reconciler import find_completed_payment

logger = structlog.get_logger(__name__)

JOB_NOT_COMPLETED = "JOB_NOT_COMPLETED"
PAYMENT_REQUIRED = "PAYMENT_REQUIRED"


@dataclass(frozen=True)
class Denied:
    """Download refused; the user should be sent to ``unlock_url``."""
    reason: str
    unlock_url: str


class DeliveryGate:
    """Download authorization for converted statements."""

    def __init__(
        self,
        db: Session,
        builder: Optional[StatementWorkbookBuilder] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.store = JobStore(db)
        self.builder = builder or get_workbook_builder()
        self.settings = settings or get_settings()

    def authorize_download(self, job_id: str) -> Union[bytes, Denied]:
        """
        Return workbook bytes, or Denied.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = self.store.get(job_id)
        unlock_url = self.settings.unlock_url(job_id)

        state = job.state
        if not isinstance(state, Completed):
            logger.info("download_denied", job_id=job_id, reason=JOB_NOT_COMPLETED, status=job.status.value)
            return Denied(JOB_NOT_COMPLETED, unlock_url)

        if find_completed_payment(self.db, job_id) is None:
            logger.info("download_denied", job_id=job_id, reason=PAYMENT_REQUIRED)
            return Denied(PAYMENT_REQUIRED, unlock_url)

        preview = state.preview
        content = self.builder.build(preview.get("columns", []), preview.get("rows", []))
        logger.info("download_authorized", job_id=job_id, size=len(content))
        return content
