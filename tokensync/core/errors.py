"""Error Hierarchy — typed, categorized exceptions for all tokensync failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Client-input errors are 400-level and raised before any record mutation
    - Remote failures never halt reconciliation; they are delivered to the pending caller
    - to_response() produces the REST envelope used by the API layer

Design Decisions:
    - Single hierarchy with TokenSyncError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Remote "false" result is its own type (RemoteRejectedError), distinct from TransportError
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    platform_kind: int | None = None
    request_id: int | None = None
    storage_key: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TokenSyncError(Exception):
    """Base exception for all tokensync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "platform_kind": self.context.platform_kind,
                    "request_id": self.context.request_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Client Errors (400-level) ──────────────────────────────────

class InvalidInputError(TokenSyncError):
    """Inbound registration failed validation. No state was changed."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


# ─── Remote Errors ──────────────────────────────────────────────

class TransportError(TokenSyncError):
    """Push server or network reported an error for a device request."""
    def __init__(
        self,
        message: str,
        error_code: int,
        retryable: bool = False,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Push server error ({error_code}): {message}",
            "TRANSPORT_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.error_code = error_code
        self.retryable = retryable


class RemoteRejectedError(TokenSyncError):
    """Push server answered false without an explicit error."""
    ERROR_CODE = 5

    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Got false as result of server request",
            "REMOTE_REJECTED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 502,
        )
        self.error_code = self.ERROR_CODE


# ─── Internal / Infrastructure Errors ───────────────────────────

class RecordDecodeError(TokenSyncError):
    """Durable token record could not be parsed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid serialized token record: {message}",
            "RECORD_DECODE_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.ERROR, context, 500,
        )


class StorageError(TokenSyncError):
    """Durable storage operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Storage {operation} failed: {message}",
            "STORAGE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
