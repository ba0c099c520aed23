"""
Checkout service.

Creates a hosted checkout for a completed job with the provider that settles
the requested currency, and records the pending payment.
"""
from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from banksheet.config import Settings, get_settings
from banksheet.exceptions import JobNotReadyError
from banksheet.models.job import JobStatus
from banksheet.models.payment import Payment, PaymentProvider, PaymentStatus
from banksheet.services.job_store import JobStore
from banksheet.services.payment_providers import (
    BasePaymentProvider,
    CheckoutSession,
    build_providers,
    provider_for_currency,
)

logger = structlog.get_logger(__name__)


class CheckoutService:
    """Starts payment for a job."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        providers: Optional[Dict[str, BasePaymentProvider]] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.providers = providers if providers is not None else build_providers(self.settings)
        self.store = JobStore(db)

    def price_for(self, currency: str) -> float:
        """Conversion price in the given currency."""
        if currency.lower() == "idr":
            return self.settings.price_idr
        return self.settings.price_usd

    def create_checkout(self, job_id: str, email: Optional[str] = None, currency: str = "usd") -> CheckoutSession:
        """
        Create a checkout for a job.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobNotReadyError: If the job has no completed preview.
            PaymentProviderError: If the provider rejects the request.
        """
        job = self.store.get(job_id)
        if job.status != JobStatus.COMPLETED:
            raise JobNotReadyError(job_id, job.status.value)

        currency = currency.lower()
        provider = self.providers[provider_for_currency(currency)]
        amount = self.price_for(currency)
        email = email or job.user_email
        base_url = self.settings.public_base_url.rstrip("/")

        session = provider.create_checkout(
            job_id=job_id,
            amount=amount,
            currency=currency,
            email=email,
            success_url=f"{base_url}/download?jobId={job_id}",
            cancel_url=f"{base_url}/preview?jobId={job_id}",
        )

        payment = Payment(
            job_id=job_id,
            email=email,
            amount=amount,
            currency=currency,
            provider=PaymentProvider(provider.name),
            status=PaymentStatus.PENDING,
            provider_payment_id=session.provider_payment_id,
            payment_metadata=session.metadata,
        )
        self.db.add(payment)
        self.db.commit()

        logger.info(
            "checkout_created",
            job_id=job_id,
            provider=provider.name,
            payment_id=session.provider_payment_id,
            amount=amount,
            currency=currency,
        )
        return session
