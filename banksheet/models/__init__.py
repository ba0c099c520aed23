"""Models package."""
from banksheet.models.job import JobStatus, ProcessingJob
from banksheet.models.payment import Payment, PaymentProvider, PaymentStatus

__all__ = [
    "JobStatus", "ProcessingJob",
    "Payment", "PaymentProvider", "PaymentStatus",
]
