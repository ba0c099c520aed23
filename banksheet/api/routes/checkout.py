"""
Checkout API routes.

Starts payment for a completed job with Stripe (USD) or Xendit (IDR).
"""
import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from banksheet.database import get_db
from banksheet.schemas.jobs import CheckoutRequest, CheckoutResponse, ErrorResponse
from banksheet.services.checkout import CheckoutService

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_checkout_service(db: Session = Depends(get_db)) -> CheckoutService:
    return CheckoutService(db)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not completed"},
        502: {"model": ErrorResponse, "description": "Payment provider error"},
    },
    summary="Create a checkout for a job",
)
async def create_checkout(
    request: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """
    Create a hosted checkout.

    Returns a URL to redirect the user to the provider's payment page.
    """
    session = service.create_checkout(
        job_id=request.job_id,
        email=str(request.email) if request.email else None,
        currency=request.currency,
    )
    return CheckoutResponse(
        provider=session.provider,
        checkout_url=session.checkout_url,
        payment_id=session.provider_payment_id,
    )
