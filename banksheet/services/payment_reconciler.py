"""
Payment reconciliation service.

Turns verified provider webhooks into payment ledger writes and job status
changes. Both providers converge on ``mark_paid`` and ``mark_expired``; a
completed payment always wins over a later expiry notification.
"""
from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from banksheet.exceptions import InvalidSignatureError, InvalidWebhookPayloadError, UnknownPaymentProviderError
from banksheet.models.job import JobStatus
from banksheet.models.payment import Payment, PaymentProvider, PaymentStatus
from banksheet.services.job_store import JobStore
from banksheet.services.payment_providers import BasePaymentProvider, PaymentEvent, PaymentEventKind, build_providers

logger = structlog.get_logger(__name__)

PAYMENT_EXPIRED = "PAYMENT_EXPIRED"


def find_completed_payment(
    db: Session,
    job_id: str,
    provider: Optional[PaymentProvider] = None,
) -> Optional[Payment]:
    """Completed payment for a job, optionally limited to one provider."""
    query = db.query(Payment).filter(
        Payment.job_id == job_id,
        Payment.status == PaymentStatus.COMPLETED,
    )
    if provider is not None:
        query = query.filter(Payment.provider == provider)
    return query.first()


class PaymentReconciler:
    """Applies provider payment notifications to the job store."""

    def __init__(
        self,
        db: Session,
        store: Optional[JobStore] = None,
        providers: Optional[Dict[str, BasePaymentProvider]] = None,
    ):
        self.db = db
        self.store = store or JobStore(db)
        self.providers = providers if providers is not None else build_providers()

    def handle(self, provider_name: str, raw_body: bytes, headers: Mapping[str, str]) -> PaymentEvent:
        """
        Verify, parse and apply one webhook delivery.

        Args:
            provider_name: Registered provider name.
            raw_body: Request body exactly as received.
            headers: Request headers.

        Returns:
            The parsed event.

        Raises:
            InvalidSignatureError: Signature missing or invalid. Nothing is written.
            InvalidWebhookPayloadError: Body is not a usable event.
        """
        provider = self.providers.get(provider_name)
        if provider is None:
            raise UnknownPaymentProviderError(provider_name)

        if not provider.get_signature(headers) or not provider.verify(raw_body, headers):
            logger.warning("webhook_signature_invalid", provider=provider_name)
            raise InvalidSignatureError()

        event = provider.parse(raw_body)
        log = logger.bind(provider=provider_name, event_type=event.event_type)

        if event.kind == PaymentEventKind.IGNORED:
            log.info("webhook_event_ignored")
            return event

        job_id = provider.extract_job_id(event)
        if not job_id:
            if event.kind == PaymentEventKind.SUCCEEDED:
                log.warning("webhook_missing_job_id")
                raise InvalidWebhookPayloadError("Event does not reference a job")
            log.info("webhook_expiry_without_job")
            return event

        log.info("webhook_received", job_id=job_id)

        if event.kind == PaymentEventKind.SUCCEEDED:
            self.mark_paid(
                job_id,
                provider_name,
                email=event.email,
                amount=event.amount,
                currency=event.currency,
                provider_payment_id=event.provider_payment_id,
                metadata=event.metadata,
            )
        else:
            self.mark_expired(job_id)

        return event

    def mark_paid(
        self,
        job_id: str,
        provider: str,
        email: Optional[str] = None,
        amount: float = 0.0,
        currency: Optional[str] = None,
        provider_payment_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """
        Record a successful payment and unlock the job.

        Idempotent per (job id, provider): once a completed payment exists,
        further notifications change nothing.
        """
        provider_enum = PaymentProvider(provider)

        existing = find_completed_payment(self.db, job_id, provider_enum)
        if existing is not None:
            logger.info("payment_already_recorded", job_id=job_id, provider=provider)
            return existing

        payment = (
            self.db.query(Payment)
            .filter(
                Payment.job_id == job_id,
                Payment.provider == provider_enum,
                Payment.status == PaymentStatus.PENDING,
            )
            .order_by(Payment.created_at.desc())
            .with_for_update()
            .first()
        )

        if payment is None:
            payment = Payment(
                job_id=job_id,
                provider=provider_enum,
                provider_payment_id=provider_payment_id,
                currency=(currency or "usd").lower(),
            )
            self.db.add(payment)
        elif not payment.provider_payment_id:
            payment.provider_payment_id = provider_payment_id

        payment.status = PaymentStatus.COMPLETED
        payment.amount = amount
        if email:
            payment.email = email
        if currency:
            payment.currency = currency.lower()
        merged = dict(payment.payment_metadata or {})
        merged.update({k: v for k, v in (metadata or {}).items() if v is not None})
        payment.payment_metadata = merged

        try:
            self.db.flush()
        except IntegrityError:
            # Another delivery recorded the same payment first
            self.db.rollback()
            logger.info("payment_duplicate_ignored", job_id=job_id, provider=provider)
            return find_completed_payment(self.db, job_id, provider_enum)

        job = self.store.find(job_id)
        if job is not None and job.preview_data:
            job.mark_paid()
        else:
            logger.warning("payment_for_job_without_preview", job_id=job_id, provider=provider)

        self.db.commit()
        logger.info("payment_recorded", job_id=job_id, provider=provider, amount=amount, currency=payment.currency)
        return payment

    def mark_expired(self, job_id: str) -> bool:
        """
        Fail a job whose checkout expired.

        Returns:
            True if the job was moved to failed.
        """
        if find_completed_payment(self.db, job_id) is not None:
            logger.info("payment_expiry_ignored", job_id=job_id, reason="already_paid")
            return False

        job = self.store.find(job_id)
        if job is None:
            logger.warning("payment_expiry_for_unknown_job", job_id=job_id)
            return False
        if job.status == JobStatus.FAILED:
            return False

        job.mark_failed(PAYMENT_EXPIRED, "Payment session expired")
        self.db.commit()
        logger.info("payment_expired", job_id=job_id)
        return True
