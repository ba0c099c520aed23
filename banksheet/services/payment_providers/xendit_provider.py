"""
Xendit payment provider.

Callbacks are signed with an HMAC-SHA256 of the raw body. The job id is
embedded in the invoice ``external_id`` as ``job_<jobId>_<suffix>``.
"""
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Mapping, Optional

import httpx
import structlog

from banksheet.exceptions import InvalidWebhookPayloadError, PaymentProviderError
from banksheet.services.payment_providers.base import (
    BasePaymentProvider,
    CheckoutSession,
    PaymentEvent,
    PaymentEventKind,
)

logger = structlog.get_logger(__name__)

EXTERNAL_ID_PREFIX = "job_"
EXTERNAL_ID_DELIMITER = "_"

# Flat invoice callbacks carry a status instead of an event name
STATUS_EVENTS = {
    "PAID": "invoice.paid",
    "SETTLED": "invoice.paid",
    "EXPIRED": "invoice.expired",
}


def build_external_id(job_id: str, suffix: Optional[str] = None) -> str:
    """Compose the invoice external id for a job."""
    return f"{EXTERNAL_ID_PREFIX}{job_id}{EXTERNAL_ID_DELIMITER}{suffix or int(time.time())}"


def parse_external_id(external_id: Optional[str]) -> Optional[str]:
    """
    Recover the job id from an invoice external id.

    ``job_abc123_extra`` -> ``abc123``.
    """
    if not isinstance(external_id, str) or not external_id:
        return None
    value = external_id
    if value.startswith(EXTERNAL_ID_PREFIX):
        value = value[len(EXTERNAL_ID_PREFIX):]
    job_id = value.split(EXTERNAL_ID_DELIMITER)[0]
    return job_id or None


def sign_callback(secret: str, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of a callback body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


class XenditProvider(BasePaymentProvider):
    """Xendit invoice integration."""

    SUCCEEDED_EVENTS = {"invoice.paid"}
    EXPIRED_EVENTS = {"invoice.expired"}

    def __init__(
        self,
        secret_key: str,
        callback_secret: str,
        api_base: str = "https://api.xendit.co",
        timeout: float = 30.0,
    ):
        self.secret_key = secret_key
        self.callback_secret = callback_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "xendit"

    @property
    def signature_header(self) -> str:
        return "x-callback-signature"

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = self.get_signature(headers)
        if not signature:
            return False
        if not self.callback_secret:
            logger.warning("xendit_callback_secret_not_configured")
            return False

        expected = sign_callback(self.callback_secret, raw_body)
        return hmac.compare_digest(expected, signature.strip().lower())

    def parse(self, raw_body: bytes) -> PaymentEvent:
        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise InvalidWebhookPayloadError() from e
        if not isinstance(payload, dict):
            raise InvalidWebhookPayloadError()

        if "event" in payload:
            event_type = str(payload["event"])
            data = payload.get("data") or {}
        else:
            event_type = STATUS_EVENTS.get(str(payload.get("status", "")).upper(), "invoice.unknown")
            data = payload
        if not isinstance(data, dict):
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
            data=data,
            provider_payment_id=data.get("id"),
            email=self._email(data),
            amount=self._amount(data),
            currency=str(data.get("currency") or "idr").lower(),
            metadata={
                "paymentId": data.get("id"),
                "paymentProvider": self.name,
                "invoiceUrl": data.get("invoice_url"),
            },
        )

    def extract_job_id(self, event: PaymentEvent) -> Optional[str]:
        return parse_external_id(event.data.get("external_id"))

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

        body: Dict[str, Any] = {
            "external_id": build_external_id(job_id),
            "amount": amount,
            "currency": currency.upper(),
            "description": "Bank statement conversion",
            "success_redirect_url": success_url,
            "failure_redirect_url": cancel_url,
        }
        if email:
            body["payer_email"] = email

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.api_base}/v2/invoices",
                    json=body,
                    auth=(self.secret_key, ""),
                )
                response.raise_for_status()
                invoice = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("xendit_error", job_id=job_id, error=str(e))
            raise PaymentProviderError(self.name) from e

        logger.info("xendit_invoice_created", job_id=job_id, invoice_id=invoice.get("id"))

        return CheckoutSession(
            provider=self.name,
            provider_payment_id=invoice["id"],
            checkout_url=invoice["invoice_url"],
            amount=amount,
            currency=currency,
            metadata={
                "paymentId": invoice["id"],
                "paymentProvider": self.name,
                "invoiceUrl": invoice["invoice_url"],
                "externalId": body["external_id"],
            },
        )

    @staticmethod
    def _email(data: Dict[str, Any]) -> Optional[str]:
        customer = data.get("customer")
        if not isinstance(customer, dict):
            customer = {}
        return customer.get("email") or data.get("payer_email")

    @staticmethod
    def _amount(data: Dict[str, Any]) -> float:
        try:
            return float(data.get("paid_amount") or data.get("amount") or 0)
        except (TypeError, ValueError) as e:
            raise InvalidWebhookPayloadError("Invalid payment amount") from e
