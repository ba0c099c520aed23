"""
Preview API routes.

Reports job status and, once processing has finished, a limited preview of
the structured statement.
"""
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from banksheet.config import get_settings
from banksheet.database import get_db
from banksheet.models.job import Completed, Failed, Processing
from banksheet.schemas.jobs import (
    CompletedPreviewResponse,
    ErrorResponse,
    FailedPreviewResponse,
    JobErrorDetail,
    PreviewData,
    ProcessingPreviewResponse,
    QueuedPreviewResponse,
)
from banksheet.services.job_store import JobStore
from banksheet.services.payment_reconciler import find_completed_payment

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter()


def _json(model, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(by_alias=True, mode="json"))


@router.get(
    "/preview/{job_id}",
    responses={
        200: {"description": "Completed or failed job"},
        202: {"description": "Job queued or processing"},
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
    summary="Get job status and preview",
)
async def get_preview(job_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    """
    Status-dependent view of a job.

    Completed jobs show the first rows only; the full file is released by
    the download endpoint after payment.
    """
    store = JobStore(db)
    job = store.get(job_id)
    state = job.state

    if isinstance(state, Completed):
        preview = state.preview
        rows = preview.get("rows") or []
        body = CompletedPreviewResponse(
            job_id=job_id,
            preview=PreviewData(
                columns=preview.get("columns") or [],
                rows=rows[: settings.preview_row_limit],
                total_rows=len(rows),
                confidence_score=state.confidence,
                file_type=job.file_type,
                detected_bank=preview.get("detectedBank"),
                needs_review=bool(preview.get("needsReview", False)),
                warnings=preview.get("warnings") or [],
            ),
            unlock_url=settings.unlock_url(job_id),
            paid=find_completed_payment(db, job_id) is not None,
        )
        return _json(body, status.HTTP_200_OK)

    if isinstance(state, Failed):
        body = FailedPreviewResponse(
            job_id=job_id,
            error=JobErrorDetail(code=state.reason, message=state.message or "File processing failed"),
        )
        return _json(body, status.HTTP_200_OK)

    if isinstance(state, Processing):
        remaining = settings.estimated_processing_seconds * (1.0 - state.progress)
        body = ProcessingPreviewResponse(
            job_id=job_id,
            progress=int(round(state.progress * 100)),
            estimated_seconds_remaining=max(1, int(round(remaining))),
        )
        return _json(body, status.HTTP_202_ACCEPTED)

    body = QueuedPreviewResponse(job_id=job_id, position=store.queue_position(job))
    return _json(body, status.HTTP_202_ACCEPTED)
