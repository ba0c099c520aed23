"""
Unit tests for custom exceptions.

Tests exception hierarchy and error formatting.
"""
import pytest

from banksheet.exceptions import (
    BankSheetError,
    DocumentProcessingError,
    ExternalServiceError,
    FatalProcessingError,
    FileTooLargeError,
    InvalidFileTypeError,
    InvalidJobTransitionError,
    InvalidSignatureError,
    JobNotFoundError,
    NoFileError,
    PayloadIntegrityError,
    PaymentProviderError,
    PaymentRequiredError,
    QueueUnavailableError,
    UnsupportedFormatError,
)


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    def test_base_exception(self):
        """Test base BankSheetError."""
        exc = BankSheetError("Test error")

        assert exc.error_code == "INTERNAL_ERROR"
        assert exc.message == "Test error"
        assert exc.http_status == 500

    def test_fatal_errors_are_processing_errors(self):
        """Fatal extraction errors share the processing base."""
        assert issubclass(UnsupportedFormatError, FatalProcessingError)
        assert issubclass(PayloadIntegrityError, FatalProcessingError)
        assert issubclass(FatalProcessingError, DocumentProcessingError)

    def test_payment_provider_error_is_external(self):
        """Provider failures are external service errors."""
        exc = PaymentProviderError("stripe")

        assert isinstance(exc, ExternalServiceError)
        assert exc.error_code == "PAYMENT_PROVIDER_ERROR"
        assert exc.http_status == 502
        assert exc.details == {"service": "stripe"}

    def test_error_code_override(self):
        """Instance error code overrides the class default."""
        exc = DocumentProcessingError("boom", error_code="CUSTOM")

        assert exc.error_code == "CUSTOM"
        assert DocumentProcessingError.error_code == "PROCESSING_FAILED"


class TestIntakeErrors:
    """Tests for intake validation errors."""

    def test_no_file(self):
        exc = NoFileError()

        assert exc.error_code == "NO_FILE"
        assert exc.http_status == 400

    def test_file_too_large_details(self):
        """FILE_TOO_LARGE reports both sizes."""
        exc = FileTooLargeError(size=30 * 1024 * 1024, max_size=25 * 1024 * 1024)

        assert exc.http_status == 413
        assert exc.message == "File exceeds 25MB limit"
        assert exc.details == {"maxSize": 25 * 1024 * 1024, "actualSize": 30 * 1024 * 1024}

    def test_invalid_file_type_details(self):
        exc = InvalidFileTypeError("text/plain", ["application/pdf"])

        assert exc.error_code == "INVALID_FILE_TYPE"
        assert exc.details["receivedType"] == "text/plain"
        assert exc.details["validTypes"] == ["application/pdf"]


class TestErrorSerialization:
    """Tests for error to_dict method."""

    def test_to_dict_format(self):
        """Test error serializes to expected format."""
        exc = JobNotFoundError("abc123")
        result = exc.to_dict()

        assert result == {
            "error": True,
            "error_code": "JOB_NOT_FOUND",
            "message": "Job not found",
            "details": {"jobId": "abc123"},
        }

    def test_payment_required_carries_unlock_url(self):
        exc = PaymentRequiredError("abc123", "/checkout?jobId=abc123")

        assert exc.http_status == 403
        assert exc.details["unlockUrl"] == "/checkout?jobId=abc123"
        assert exc.details["reason"] == "PAYMENT_REQUIRED"

    def test_invalid_signature_message_is_generic(self):
        exc = InvalidSignatureError()

        assert exc.message == "Invalid signature"
        assert exc.details == {}

    def test_transition_error_details(self):
        exc = InvalidJobTransitionError("abc123", "uploaded", "completed")

        assert exc.http_status == 409
        assert exc.details == {"jobId": "abc123", "from": "uploaded", "to": "completed"}

    @pytest.mark.parametrize(
        "exc_class,status",
        [(QueueUnavailableError, 503), (NoFileError, 400), (InvalidSignatureError, 400)],
    )
    def test_http_status(self, exc_class, status):
        assert exc_class().http_status == status
