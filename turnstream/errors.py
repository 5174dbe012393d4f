"""
Error taxonomy and structured error reporting for turnstream.

The engine never lets a failure escape without first putting the rendered
turn into a safe terminal form. Failures that the engine recovers from
locally (malformed lines, unrecognized tool results) are logged; failures
that the user should know about are passed to an error reporter as an
``ErrorResult``.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class TurnStreamError(Exception):
    """Base class for all turnstream errors."""


class TransportError(TurnStreamError):
    """Raised when reading the response stream fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedEventError(TurnStreamError):
    """Raised when a line payload cannot be decoded as structured data."""

    def __init__(self, message: str, payload: str = ""):
        self.payload = payload
        super().__init__(message)


class LegacyResultFailure(Enum):
    """Ways the legacy literal-object mini-parser can fail."""
    NOT_A_LITERAL = "not_a_literal"           # No ``TypeName(`` ... ``)`` shape
    MISSING_FIELD = "missing_field"           # Required field name not present
    UNQUOTED_VALUE = "unquoted_value"         # Field present but not single-quoted
    UNTERMINATED_VALUE = "unterminated_value"  # Quote opened but never closed


class UnrecognizedLegacyResultError(TurnStreamError):
    """Raised when a tool result matches neither JSON nor the legacy literal form."""

    def __init__(self, reason: LegacyResultFailure, field_name: Optional[str] = None):
        self.reason = reason
        self.field_name = field_name
        detail = f" (field '{field_name}')" if field_name else ""
        super().__init__(f"Unrecognized legacy tool result: {reason.value}{detail}")


class UnauthorizedError(TurnStreamError):
    """Raised when the backend rejects the session credentials."""


class PermissionActionError(TurnStreamError):
    """Raised when an approve/deny action fails."""

    def __init__(self, permission_id: str, message: str, status_code: Optional[int] = None):
        self.permission_id = permission_id
        self.status_code = status_code
        super().__init__(message)


class InvalidPermissionTransition(TurnStreamError):
    """Raised when a permission status change is not allowed."""

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot apply '{action}' to permission in state '{current}'")


class PersistenceError(TurnStreamError):
    """Raised when the message store cannot save or load a turn."""


class ErrorType(Enum):
    """Types of errors surfaced to the error reporter."""
    UNAUTHORIZED = "unauthorized"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    PERSISTENCE_ERROR = "persistence_error"
    RATE_LIMIT = "rate_limit"
    BACKEND_ERROR = "backend_error"
    PERMISSION_ACTION = "permission_action"
    INTERRUPTED = "interrupted"
    UNKNOWN = "unknown"


@dataclass
class ErrorResult:
    """
    Structured error passed to the error-reporting collaborator.

    Attributes:
        error_type: The type of error
        message: Human-readable error message
        action: Suggested next step for the user
        raw_error: The original error message
        recoverable: Whether the session can continue
    """
    error_type: ErrorType
    message: str
    action: Optional[str] = None
    raw_error: str = ""
    recoverable: bool = True


ERROR_MESSAGES: dict[ErrorType, tuple[str, str]] = {
    ErrorType.UNAUTHORIZED: (
        "Your session has expired.",
        "Log in again to continue.",
    ),
    ErrorType.NETWORK_ERROR: (
        "Cannot connect to the agent backend.",
        "Check your connection and try again.",
    ),
    ErrorType.TIMEOUT: (
        "The request took too long.",
        "Try a shorter message or try again later.",
    ),
    ErrorType.SERVICE_UNAVAILABLE: (
        "The service is temporarily unavailable.",
        "Try again in a few minutes.",
    ),
    ErrorType.PERSISTENCE_ERROR: (
        "There was a problem saving messages.",
        "Check your connection.",
    ),
    ErrorType.RATE_LIMIT: (
        "Too many requests.",
        "Wait a moment and try again.",
    ),
    ErrorType.BACKEND_ERROR: (
        "The agent backend reported an error.",
        "Try again later.",
    ),
    ErrorType.PERMISSION_ACTION: (
        "The permission response could not be delivered.",
        "Try approving or denying again.",
    ),
    ErrorType.INTERRUPTED: (
        "The response was interrupted.",
        "Send your message again.",
    ),
    ErrorType.UNKNOWN: (
        "An unexpected error occurred.",
        "Try again later.",
    ),
}


def describe_error(error_type: ErrorType, raw_error: str = "", recoverable: bool = True) -> ErrorResult:
    """
    Build an ErrorResult from the message catalog.

    Args:
        error_type: Catalog entry to use
        raw_error: Original error text
        recoverable: Whether the session can continue

    Returns:
        ErrorResult with catalog message and action
    """
    message, action = ERROR_MESSAGES.get(error_type, ERROR_MESSAGES[ErrorType.UNKNOWN])
    return ErrorResult(
        error_type=error_type,
        message=message,
        action=action,
        raw_error=raw_error,
        recoverable=recoverable,
    )


def classify_status(status_code: Optional[int]) -> ErrorType:
    """Map an HTTP status code onto an ErrorType."""
    if status_code is None:
        return ErrorType.NETWORK_ERROR
    if status_code in (401, 403):
        return ErrorType.UNAUTHORIZED
    if status_code in (408, 504):
        return ErrorType.TIMEOUT
    if status_code == 429:
        return ErrorType.RATE_LIMIT
    if status_code in (502, 503):
        return ErrorType.SERVICE_UNAVAILABLE
    if status_code >= 500:
        return ErrorType.BACKEND_ERROR
    return ErrorType.UNKNOWN


ErrorReporter = Callable[[ErrorResult], None]


def log_error_reporter(result: ErrorResult) -> None:
    """Default reporter: log the error instead of displaying it."""
    if result.recoverable:
        logger.warning(f"{result.error_type.value}: {result.message} ({result.raw_error})")
    else:
        logger.error(f"{result.error_type.value}: {result.message} ({result.raw_error})")
