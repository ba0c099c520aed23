"""
Middleware module initialization.
"""
from banksheet.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    get_correlation_id,
    redact_sensitive_data,
    add_correlation_id_processor,
    redact_sensitive_processor,
)
from banksheet.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    upload_rate_limit,
)

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "get_correlation_id",
    "redact_sensitive_data",
    "add_correlation_id_processor",
    "redact_sensitive_processor",
    "limiter",
    "rate_limit_exceeded_handler",
    "upload_rate_limit",
]
