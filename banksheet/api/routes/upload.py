"""
Upload API routes.

Accepts a statement file, records the job, and hands it to the processing
queue. The response returns before any extraction happens.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from banksheet.config import get_settings
from banksheet.database import get_db
from banksheet.exceptions import (
    FileTooLargeError,
    InvalidEmailError,
    InvalidFileTypeError,
    NoFileError,
    QueueUnavailableError,
)
from banksheet.middleware.rate_limit import upload_rate_limit
from banksheet.queue import ProcessingQueue, QueueMessage
from banksheet.schemas.jobs import ErrorResponse, UploadResponse
from banksheet.services.document_extractor import SUPPORTED_TYPES
from banksheet.services.job_store import JobStore

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter()

_email_adapter = TypeAdapter(EmailStr)


def get_queue(request: Request) -> ProcessingQueue:
    """Queue client opened by the application lifespan."""
    return request.app.state.queue


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Normalise an optional contact email.

    Raises:
        InvalidEmailError: If a non-empty value is not a valid address.
    """
    if email is None or not email.strip():
        return None
    try:
        return str(_email_adapter.validate_python(email.strip()))
    except ValidationError:
        raise InvalidEmailError()


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse, "description": "Missing file, bad type or bad email"},
        413: {"model": ErrorResponse, "description": "File too large"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"model": ErrorResponse, "description": "Processing queue unavailable"},
    },
    summary="Upload a bank statement",
    description="Upload a PDF or Excel statement for conversion. Processing happens in the background.",
)
@upload_rate_limit()
async def upload_statement(
    request: Request,
    file: Optional[UploadFile] = File(None, description="PDF or Excel statement"),
    email: Optional[str] = Form(None, description="Contact email for the receipt"),
    db: Session = Depends(get_db),
    queue: ProcessingQueue = Depends(get_queue),
) -> UploadResponse:
    """
    Validate and enqueue a statement file.

    Checks run in a fixed order: presence, size, type, email.
    """
    if file is None:
        raise NoFileError()

    # Check file size before reading the content
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    if size > settings.max_upload_size_bytes:
        raise FileTooLargeError(size, settings.max_upload_size_bytes)

    data = await file.read()

    if file.content_type not in SUPPORTED_TYPES:
        raise InvalidFileTypeError(file.content_type, list(SUPPORTED_TYPES))

    user_email = validate_email(email)

    store = JobStore(db)
    job = store.create(file_type=file.content_type, file_name=file.filename, user_email=user_email)

    message = QueueMessage.for_upload(
        job_id=job.job_id,
        file_type=file.content_type,
        data=data,
        file_name=file.filename,
        user_email=user_email,
    )
    try:
        queue.enqueue(message)
    except QueueUnavailableError:
        store.mark_failed(job.job_id, QueueUnavailableError.error_code, "Processing queue is unavailable")
        raise

    logger.info("file_uploaded", job_id=job.job_id, file_type=file.content_type, size=size)

    return UploadResponse(
        job_id=job.job_id,
        status="processing",
        estimated_time=settings.estimated_processing_seconds,
        preview_url=f"/api/preview/{job.job_id}",
    )
