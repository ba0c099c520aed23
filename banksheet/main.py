"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings. The
processing queue client is opened in the lifespan and stored on
``app.state.queue``.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

# Initialize Sentry for error tracking (must be done early)
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from banksheet.api.routes import checkout, download, preview, upload, webhooks
from banksheet.celery_app import create_celery_app
from banksheet.config import get_settings
from banksheet.database import init_db
from banksheet.exceptions import BankSheetError
from banksheet.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_data,
    redact_sensitive_processor,
)
from banksheet.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from banksheet.queue import CeleryProcessingQueue

APP_VERSION = "1.0.0"

settings = get_settings()


def _filter_sensitive_data(event: dict, hint: dict) -> dict:
    """Filter sensitive data from Sentry events before sending."""
    if "request" in event and "data" in event["request"]:
        event["request"]["data"] = redact_sensitive_data(event["request"]["data"])
    if "extra" in event:
        event["extra"] = redact_sensitive_data(event["extra"])
    return event


if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=APP_VERSION,
        traces_sample_rate=0.1,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level="ERROR"),
        ],
        send_default_pii=False,
        before_send=_filter_sensitive_data,
    )

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,
        redact_sensitive_processor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and queue client for the lifetime of the app."""
    logger.info("starting_banksheet_api", debug=settings.debug, sentry_enabled=bool(settings.sentry_dsn))

    init_db()

    queue = getattr(app.state, "queue", None)
    if queue is None:
        queue = CeleryProcessingQueue(create_celery_app(settings))
        app.state.queue = queue
    queue.connect()

    logger.info("banksheet_api_started")
    yield

    queue.close()
    logger.info("banksheet_api_stopped")


app = FastAPI(
    title="BankSheet API",
    description="""
## Bank Statement Conversion API

Upload a PDF or spreadsheet bank statement, poll for a structured preview,
pay through Stripe or Xendit, and download the full Excel workbook.
    """,
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Upload", "description": "Statement intake"},
        {"name": "Preview", "description": "Job status and preview"},
        {"name": "Checkout", "description": "Payment checkout"},
        {"name": "Download", "description": "Paid workbook download"},
        {"name": "Webhooks", "description": "Payment provider notifications"},
        {"name": "Health", "description": "Health checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.public_base_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Order matters: correlation ID first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(upload.router, prefix="/api", tags=["Upload"])
app.include_router(preview.router, prefix="/api", tags=["Preview"])
app.include_router(checkout.router, prefix="/api", tags=["Checkout"])
app.include_router(download.router, prefix="/api", tags=["Download"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])


@app.exception_handler(BankSheetError)
async def banksheet_exception_handler(request: Request, exc: BankSheetError):
    """Handle all BankSheet exceptions."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "banksheet_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions without leaking internals."""
    sentry_sdk.capture_exception(exc)

    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        message=str(exc),
        path=str(request.url.path),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "details": {"error_type": type(exc).__name__} if settings.debug else {},
        },
    )


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "version": APP_VERSION}
