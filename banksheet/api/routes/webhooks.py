"""
Payment webhook routes.

Each endpoint hands the raw body and headers to the reconciler; signatures
are checked over the bytes exactly as received.
"""
import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from banksheet.database import get_db
from banksheet.schemas.jobs import ErrorResponse, WebhookAck
from banksheet.services.payment_reconciler import PaymentReconciler

logger = structlog.get_logger(__name__)

router = APIRouter()

WEBHOOK_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid signature or payload"},
}


def get_reconciler(db: Session = Depends(get_db)) -> PaymentReconciler:
    return PaymentReconciler(db)


async def _reconcile(provider: str, request: Request, reconciler: PaymentReconciler) -> WebhookAck:
    raw_body = await request.body()
    reconciler.handle(provider, raw_body, request.headers)
    return WebhookAck()


@router.post("/stripe", response_model=WebhookAck, responses=WEBHOOK_RESPONSES, summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> WebhookAck:
    """
    Handle Stripe webhook events.

    Events handled:
    - checkout.session.completed / payment_intent.succeeded: job paid
    - checkout.session.expired: checkout expired
    """
    return await _reconcile("stripe", request, reconciler)


@router.post("/xendit", response_model=WebhookAck, responses=WEBHOOK_RESPONSES, summary="Xendit callback")
async def xendit_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> WebhookAck:
    """
    Handle Xendit invoice callbacks.

    Events handled:
    - invoice.paid: job paid
    - invoice.expired: invoice expired
    """
    return await _reconcile("xendit", request, reconciler)
