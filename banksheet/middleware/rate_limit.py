"""
Rate limiting for intake endpoints.

Uses slowapi; limits and storage come from settings so tests and local runs
can switch limiting off.
"""
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse
import structlog

from banksheet.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


def get_client_identifier(request: Request) -> str:
    """Client key for rate limiting: first forwarded address, else peer IP."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri=settings.rate_limit_storage_uri or "memory://",
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render rate limit errors in the standard error shape."""
    logger.warning(
        "rate_limit_exceeded",
        client=get_client_identifier(request),
        path=request.url.path,
        limit=str(exc.detail),
    )

    retry_after = 60

    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "error_code": "RATE_LIMITED",
            "message": "Too many requests. Please slow down.",
            "details": {
                "limit": str(exc.detail),
                "retry_after_seconds": retry_after,
            },
        },
        headers={"Retry-After": str(retry_after)},
    )


def upload_rate_limit():
    """Rate limit decorator for upload endpoints."""
    return limiter.limit(settings.upload_rate_limit)
