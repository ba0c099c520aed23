"""
Custom exceptions for BankSheet.

Provides a hierarchy of exceptions with stable error codes for consistent
error handling. Every user-visible failure carries one of these codes plus a
human-readable message; stack details never leave the process.
"""
from typing import Optional, Dict, Any, List


class BankSheetError(Exception):
    """
    Base exception for all BankSheet errors.

    Attributes:
        error_code: Stable machine-readable code (e.g., FILE_TOO_LARGE)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Intake Errors
class NoFileError(BankSheetError):
    """Upload request carried no file."""
    error_code = "NO_FILE"
    http_status = 400

    def __init__(self, **kwargs):
        super().__init__("No file provided", **kwargs)


class FileTooLargeError(BankSheetError):
    """File exceeds maximum size limit."""
    error_code = "FILE_TOO_LARGE"
    http_status = 413

    def __init__(self, size: int, max_size: int, **kwargs):
        message = f"File exceeds {max_size // (1024 * 1024)}MB limit"
        super().__init__(message, details={"maxSize": max_size, "actualSize": size}, **kwargs)


class InvalidFileTypeError(BankSheetError):
    """Declared MIME type is not an accepted statement format."""
    error_code = "INVALID_FILE_TYPE"
    http_status = 400

    def __init__(self, received_type: Optional[str], valid_types: List[str], **kwargs):
        super().__init__(
            "Invalid file type",
            details={"validTypes": valid_types, "receivedType": received_type},
            **kwargs,
        )


class InvalidEmailError(BankSheetError):
    """Contact email could not be validated."""
    error_code = "INVALID_EMAIL"
    http_status = 400

    def __init__(self, **kwargs):
        super().__init__("Invalid email address", **kwargs)


# Job Errors
class JobNotFoundError(BankSheetError):
    """Job not found in the job store."""
    error_code = "JOB_NOT_FOUND"
    http_status = 404

    def __init__(self, job_id: str, **kwargs):
        super().__init__("Job not found", details={"jobId": job_id}, **kwargs)


class JobNotReadyError(BankSheetError):
    """Job has no completed preview yet."""
    error_code = "JOB_NOT_READY"
    http_status = 409

    def __init__(self, job_id: str, status: str, **kwargs):
        message = "Job has not finished processing"
        super().__init__(message, details={"jobId": job_id, "status": status}, **kwargs)


class InvalidJobTransitionError(BankSheetError):
    """Requested status change is not part of the job lifecycle."""
    error_code = "INVALID_JOB_TRANSITION"
    http_status = 409

    def __init__(self, job_id: str, current: str, target: str, **kwargs):
        message = f"Cannot move job from {current} to {target}"
        super().__init__(
            message,
            details={"jobId": job_id, "from": current, "to": target},
            **kwargs,
        )


# Processing Errors
class DocumentProcessingError(BankSheetError):
    """Error during document processing."""
    error_code = "PROCESSING_FAILED"
    http_status = 422

    def __init__(self, message: str = "File processing failed", **kwargs):
        super().__init__(message, **kwargs)


class FatalProcessingError(DocumentProcessingError):
    """Processing error that no amount of retrying can fix."""


class UnsupportedFormatError(FatalProcessingError):
    """File cannot be parsed as its declared type."""
    error_code = "UNSUPPORTED_FORMAT"

    def __init__(self, file_type: str, reason: Optional[str] = None, **kwargs):
        message = f"Unable to read file as {file_type}"
        details = {"fileType": file_type}
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details, **kwargs)


class PayloadIntegrityError(FatalProcessingError):
    """Queued file bytes do not match the hash recorded at intake."""
    error_code = "PAYLOAD_CORRUPTED"

    def __init__(self, job_id: str, **kwargs):
        super().__init__("Queued file content is corrupted", details={"jobId": job_id}, **kwargs)


# Payment Errors
class PaymentRequiredError(BankSheetError):
    """Download attempted before payment was confirmed."""
    error_code = "PAYMENT_REQUIRED"
    http_status = 403

    def __init__(self, job_id: str, unlock_url: str, reason: str = "PAYMENT_REQUIRED", **kwargs):
        super().__init__(
            "Payment required to access this file",
            details={"jobId": job_id, "unlockUrl": unlock_url, "reason": reason},
            **kwargs,
        )


class InvalidSignatureError(BankSheetError):
    """Webhook signature missing or not valid."""
    error_code = "INVALID_SIGNATURE"
    http_status = 400

    def __init__(self, **kwargs):
        super().__init__("Invalid signature", **kwargs)


class InvalidWebhookPayloadError(BankSheetError):
    """Verified webhook body could not be interpreted."""
    error_code = "INVALID_WEBHOOK_PAYLOAD"
    http_status = 400

    def __init__(self, message: str = "Invalid webhook payload", **kwargs):
        super().__init__(message, **kwargs)


class UnknownPaymentProviderError(BankSheetError):
    """No payment provider registered under the requested name."""
    error_code = "UNKNOWN_PROVIDER"
    http_status = 404

    def __init__(self, provider: str, **kwargs):
        super().__init__(f"Unknown payment provider '{provider}'", details={"provider": provider}, **kwargs)


# Infrastructure Errors
class QueueUnavailableError(BankSheetError):
    """Processing queue could not accept the job."""
    error_code = "QUEUE_UNAVAILABLE"
    http_status = 503

    def __init__(self, message: str = "Processing queue is unavailable", **kwargs):
        super().__init__(message, **kwargs)


class ExternalServiceError(BankSheetError):
    """External service call failed."""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502

    def __init__(self, service_name: str, message: str = None, **kwargs):
        msg = message or f"External service '{service_name}' is unavailable"
        super().__init__(msg, details={"service": service_name}, **kwargs)


class PaymentProviderError(ExternalServiceError):
    """Payment provider rejected or failed a checkout request."""
    error_code = "PAYMENT_PROVIDER_ERROR"

    def __init__(self, provider: str, **kwargs):
        super().__init__(provider, message="Payment provider request failed", **kwargs)
