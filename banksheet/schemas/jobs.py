"""
Pydantic schemas for job, checkout and webhook endpoints.

Public payloads use camelCase keys; fields are declared in snake_case and
aliased.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ColumnSchema(CamelModel):
    """Table column definition."""

    name: str = Field(..., description="Display name")
    key: str = Field(..., description="Row dict key")


class UploadResponse(CamelModel):
    """Response model for an accepted upload."""

    job_id: str = Field(..., description="Opaque job handle")
    status: str = Field("processing", description="Job status")
    estimated_time: int = Field(..., description="Estimated processing time in seconds")
    preview_url: str = Field(..., description="Where to poll for the preview")


class QueuedPreviewResponse(CamelModel):
    """Job accepted but not yet picked up by a worker."""

    job_id: str
    status: Literal["queued"] = "queued"
    position: int = Field(..., description="1-based queue position")


class ProcessingPreviewResponse(CamelModel):
    """Job being processed."""

    job_id: str
    status: Literal["processing"] = "processing"
    progress: int = Field(..., description="Percent complete")
    estimated_seconds_remaining: int


class PreviewData(CamelModel):
    """Limited view of the structured statement."""

    columns: List[ColumnSchema] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total_rows: int = 0
    confidence_score: float = 0.0
    file_type: str
    detected_bank: Optional[str] = None
    needs_review: bool = False
    warnings: List[str] = Field(default_factory=list)


class CompletedPreviewResponse(CamelModel):
    """Job finished; first rows visible, full file behind checkout."""

    job_id: str
    status: Literal["completed"] = "completed"
    preview: PreviewData
    unlock_url: str
    paid: bool = False


class JobErrorDetail(CamelModel):
    """Stable failure reason."""

    code: str
    message: str


class FailedPreviewResponse(CamelModel):
    """Job failed."""

    job_id: str
    status: Literal["failed"] = "failed"
    error: JobErrorDetail


class CheckoutRequest(CamelModel):
    """Request to start payment for a job."""

    job_id: str = Field(..., description="Job to unlock")
    email: Optional[EmailStr] = Field(None, description="Receipt email")
    currency: Literal["usd", "idr"] = Field("usd", description="Checkout currency")


class CheckoutResponse(CamelModel):
    """Hosted checkout to redirect the user to."""

    provider: str
    checkout_url: str
    payment_id: str


class WebhookAck(CamelModel):
    """Acknowledgement returned to payment providers."""

    received: bool = True


class ErrorResponse(BaseModel):
    """Error body rendered for every BankSheetError."""

    error: bool = True
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
