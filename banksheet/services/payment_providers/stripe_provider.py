"""
Stripe payment provider.

Webhooks are verified with Stripe's own signature check against the shared
webhook secret; the job id travels in ``metadata.jobId``.
"""
import json
from typing import Any, Dict, Mapping, Optional

import stripe
import structlog

from banksheet.exceptions import InvalidWebhookPayloadError, PaymentProviderError
from banksheet.services.payment_providers.base import (
    BasePaymentProvider,
    CheckoutSession,
    PaymentEvent,
    PaymentEventKind,
)

logger = structlog.get_logger(__name__)


class StripeProvider(BasePaymentProvider):
    """Stripe Checkout integration."""

    SUCCEEDED_EVENTS = {"checkout.session.completed", "payment_intent.succeeded"}
    EXPIRED_EVENTS = {"checkout.session.expired"}

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    @property
    def name(self) -> str:
        return "stripe"

    @property
    def signature_header(self) -> str:
        return "stripe-signature"

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = self.get_signature(headers)
        if not signature:
            return False
        if not self.webhook_secret:
            logger.warning("stripe_webhook_secret_not_configured")
            return False

        try:
            stripe.WebhookSignature.verify_header(
                raw_body.decode("utf-8"),
                signature,
                self.webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True

    def parse(self, raw_body: bytes) -> PaymentEvent:
        try:
            event = json.loads(raw_body)
            event_type = event["type"]
            obj: Dict[str, Any] = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidWebhookPayloadError() from e
        if not isinstance(obj, dict) or not isinstance(event_type, str):
            raise InvalidWebhookPayloadError()

        if event_type in self.SUCCEEDED_EVENTS:
            kind = PaymentEventKind.SUCCEEDED
        elif event_type in self.EXPIRED_EVENTS:
            kind = PaymentEventKind.EXPIRED
        else:
            kind = PaymentEventKind.IGNORED

        return PaymentEvent(
            provider=self.name,
            event_type=event_type,
            kind=kind,
            data=obj,
            provider_payment_id=obj.get("id"),
            email=self._email(obj),
            amount=self._amount(obj),
            currency=str(obj.get("currency") or "usd").lower(),
            metadata={"paymentId": obj.get("id"), "paymentProvider": self.name, "eventId": event.get("id")},
        )

    def extract_job_id(self, event: PaymentEvent) -> Optional[str]:
        metadata = event.data.get("metadata")
        if not isinstance(metadata, dict):
            return None
        return metadata.get("jobId") or None

    def create_checkout(
        self,
        job_id: str,
        amount: float,
        currency: str,
        email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if not self.secret_key:
            raise PaymentProviderError(self.name)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": currency,
                        "unit_amount": int(round(amount * 100)),
                        "product_data": {"name": "Bank statement conversion"},
                    },
                    "quantity": 1,
                }],
                customer_email=email,
                success_url=success_url + "?session_id={CHECKOUT_SESSION_ID}",
                cancel_url=cancel_url,
                metadata={"jobId": job_id},
                payment_intent_data={"metadata": {"jobId": job_id}},
            )
        except stripe.StripeError as e:
            logger.error("stripe_error", job_id=job_id, error=str(e))
            raise PaymentProviderError(self.name) from e

        logger.info("checkout_session_created", job_id=job_id, session_id=session.id)

        return CheckoutSession(
            provider=self.name,
            provider_payment_id=session.id,
            checkout_url=session.url,
            amount=amount,
            currency=currency,
            metadata={"paymentId": session.id, "paymentProvider": self.name},
        )

    @staticmethod
    def _email(obj: Dict[str, Any]) -> Optional[str]:
        details = obj.get("customer_details")
        if not isinstance(details, dict):
            details = {}
        return obj.get("customer_email") or details.get("email") or obj.get("receipt_email")

    @staticmethod
    def _amount(obj: Dict[str, Any]) -> float:
        # Stripe amounts are in minor units
        minor = obj.get("amount_total")
        if minor is None:
            minor = obj.get("amount_received", obj.get("amount"))
        try:
            return float(minor or 0) / 100
        except (TypeError, ValueError) as e:
            raise InvalidWebhookPayloadError("Invalid payment amount") from e
