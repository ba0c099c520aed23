"""
Download API routes.

Serves the full converted workbook once the job is completed and paid for.
"""
import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from banksheet.database import get_db
from banksheet.exceptions import PaymentRequiredError
from banksheet.schemas.jobs import ErrorResponse
from banksheet.services.delivery_gate import DeliveryGate, Denied
from banksheet.services.document_extractor import XLSX_TYPE

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/download/{job_id}",
    response_class=Response,
    responses={
        200: {"content": {XLSX_TYPE: {}}, "description": "Converted workbook"},
        403: {"model": ErrorResponse, "description": "Payment required"},
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
    summary="Download the converted statement",
)
async def download_statement(job_id: str, db: Session = Depends(get_db)) -> Response:
    """Return the workbook, or 403 with the checkout URL."""
    result = DeliveryGate(db).authorize_download(job_id)
    if isinstance(result, Denied):
        raise PaymentRequiredError(job_id, result.unlock_url, result.reason)

    return Response(
        content=result,
        media_type=XLSX_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="statement_{job_id}.xlsx"',
        },
    )
