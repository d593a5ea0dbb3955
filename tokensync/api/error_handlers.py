"""Error Handlers — map exceptions raised by device token routes to JSON envelopes.

Invariants:
    - TokenSyncError → its own to_response() envelope and http_status
    - Errors carrying retry_after_ms (push server rate limits) set Retry-After
    - RequestValidationError → 400 with one entry per offending field
    - Exception (catch-all) → 500 that never leaks internal details

Design Decisions:
    - Client-side failures log at WARNING, server-side at ERROR: a rejected
      payload is not an incident
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tokensync.core.errors import ErrorCategory, ErrorSeverity, TokenSyncError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TokenSyncError, tokensync_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


async def tokensync_error_handler(request: Request, exc: TokenSyncError):
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{exc.code} on {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "platform_kind": exc.context.platform_kind,
            "request_id": exc.context.request_id,
        },
    )
    headers = None
    if exc.context.retry_after_ms is not None:
        headers = {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            # Drop the leading "body" segment: clients address their own payload
            "field": ".".join(str(loc) for loc in e["loc"][1:] or e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(f"Rejected payload on {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": ErrorCategory.VALIDATION.value,
                "severity": ErrorSeverity.ERROR.value,
                "details": details,
            },
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": ErrorCategory.INTERNAL.value,
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )
