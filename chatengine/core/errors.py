"""Error Hierarchy — typed, categorized exceptions for all chatengine failure modes.

Invariants:
    - Every error has a code (str), kind (ErrorKind), category (ErrorCategory), severity
    - Callers branch on ErrorKind, never on exception class names
    - CANCELLED is an expected outcome (severity INFO), not a fault
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with ChatEngineError base: FastAPI global handler catches all
    - ErrorContext as dataclass: observability fields without coupling to logging
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CANCELLATION = "cancellation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    STORAGE = "storage"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


class ErrorKind(str, Enum):
    """What the engine does about a failure — the switch key for every handler."""
    VALIDATION = "validation"   # rejected request body
    CANCELLED = "cancelled"     # target marked error, surfaced as a distinct outcome
    TRANSPORT = "transport"     # target marked error, logged, may propagate
    STORAGE = "storage"         # blob failure, logged only
    SNAPSHOT = "snapshot"       # snapshot parse/write failure, logged only
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    message_id: str | None = None
    storage_key: str | None = None
    retry_after_ms: int | None = None


class ChatEngineError(Exception):
    """Base exception for all chatengine errors."""

    def __init__(
        self,
        message: str,
        code: str,
        kind: ErrorKind,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind
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
                "kind": self.kind.value,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "message_id": self.context.message_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class GenerationCancelledError(ChatEngineError):
    """In-flight generation was cancelled (superseded, stopped or session deleted)."""
    def __init__(self, reason: str = "cancelled", context: ErrorContext | None = None):
        super().__init__(
            f"Generation cancelled ({reason})", "GENERATION_CANCELLED",
            ErrorKind.CANCELLED, ErrorCategory.CANCELLATION,
            ErrorSeverity.INFO, context, 409,
        )
        self.reason = reason


class ResourceNotFoundError(ChatEngineError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorKind.NOT_FOUND,
            ErrorCategory.RESOURCE_NOT_FOUND, ErrorSeverity.ERROR, context, 404,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class TransportError(ChatEngineError):
    """Completion request or chunk delivery failed."""
    def __init__(
        self,
        message: str,
        transport_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Completion transport error ({transport_error_type}): {message}",
            "TRANSPORT_ERROR", ErrorKind.TRANSPORT, ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, ctx, 503,
        )
        self.transport_error_type = transport_error_type


class StorageError(ChatEngineError):
    """Blob or database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Storage {operation} failed: {message}",
            "STORAGE_ERROR", ErrorKind.STORAGE, ErrorCategory.STORAGE,
            ErrorSeverity.ERROR, context, 503,
        )
        self.operation = operation


class SnapshotError(ChatEngineError):
    """Persisted snapshot could not be parsed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Snapshot unreadable: {message}",
            "SNAPSHOT_ERROR", ErrorKind.SNAPSHOT, ErrorCategory.STORAGE,
            ErrorSeverity.WARNING, context, 500,
        )


def as_generation_error(
    exc: Exception, context: ErrorContext | None = None,
) -> ChatEngineError:
    """Classify a failure raised while generating a reply.

    Engine errors keep their kind; anything else came from the backend or the
    chunk source and is treated as a transport failure.
    """
    if isinstance(exc, ChatEngineError):
        return exc
    return TransportError(str(exc) or type(exc).__name__, "unknown", context=context)
