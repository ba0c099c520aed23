"""
Base payment provider class.

Each processor implements signature verification, event parsing, job id
correlation and checkout creation. The reconciler only ever sees the
provider-neutral ``PaymentEvent``.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class PaymentEventKind(str, Enum):
    """What a provider notification means for a job."""
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    IGNORED = "ignored"


@dataclass
class PaymentEvent:
    """Provider notification translated into one canonical shape."""

    provider: str
    event_type: str
    kind: PaymentEventKind
    data: Dict[str, Any] = field(default_factory=dict)
    provider_payment_id: Optional[str] = None
    email: Optional[str] = None
    amount: float = 0.0
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    """Hosted checkout created for a job."""

    provider: str
    provider_payment_id: str
    checkout_url: str
    amount: float
    currency: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class BasePaymentProvider(ABC):
    """Abstract base class for payment processors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider identifier stored on Payment rows."""
        pass

    @property
    @abstractmethod
    def signature_header(self) -> str:
        """Return the request header carrying the webhook signature."""
        pass

    def get_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        """Read the signature header, matching the name case-insensitively."""
        wanted = self.signature_header.lower()
        for key, value in headers.items():
            if key.lower() == wanted:
                return value or None
        return None

    @abstractmethod
    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """
        Check the webhook signature over the raw request body.

        Args:
            raw_body: Request body exactly as received.
            headers: Request headers.

        Returns:
            True only if the signature is present and valid.
        """
        pass

    @abstractmethod
    def parse(self, raw_body: bytes) -> PaymentEvent:
        """
        Parse a verified body into a PaymentEvent.

        Raises:
            InvalidWebhookPayloadError: If the body is not a valid event.
        """
        pass

    @abstractmethod
    def extract_job_id(self, event: PaymentEvent) -> Optional[str]:
        """Recover the job id this event refers to."""
        pass

    @abstractmethod
    def create_checkout(
        self,
        job_id: str,
        amount: float,
        currency: str,
        email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """
        Create a hosted checkout for a job.

        Raises:
            PaymentProviderError: If the processor rejects the request.
        """
        pass
