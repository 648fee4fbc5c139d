"""Error classification and API error payloads.

This module provides:
- classify_error: map any exception to a registry code
- ErrorResponse: the {error, message, correlation_id, timestamp} payload
- build_error_response: sanitized payload for an exception
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from procureflow.errors.domain import (
    CartLimitError,
    ConflictError,
    ContentFlaggedError,
    DomainError,
    DuplicateItemError,
    EmptyCartError,
    ItemNotFoundError,
    NotFoundError,
    PromptInjectionError,
    SafetyRejectionError,
    ValidationError,
)
from procureflow.errors.registry import ERROR_REGISTRY, ErrorCode
from procureflow.utils.redaction import sanitize_error_message

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"

# Most specific first; the first isinstance match wins.
_CODE_BY_TYPE: list[tuple[type[Exception], str]] = [
    (PromptInjectionError, "UNSAFE_INPUT"),
    (ContentFlaggedError, "CONTENT_FLAGGED"),
    (SafetyRejectionError, "UNSAFE_INPUT"),
    (ItemNotFoundError, "ITEM_NOT_FOUND"),
    (NotFoundError, "NOT_FOUND"),
    (DuplicateItemError, "DUPLICATE_ITEM"),
    (ConflictError, "CONFLICT"),
    (CartLimitError, "CART_LIMIT_EXCEEDED"),
    (EmptyCartError, "EMPTY_CART"),
    (ValidationError, "VALIDATION_ERROR"),
]


def new_correlation_id() -> str:
    """Generate a correlation id for one failed request."""
    return str(uuid4())


def classify_error(exc: BaseException) -> ErrorCode:
    """Map an exception to its registry entry.

    Unknown exception types, and DomainError subclasses without a more
    specific mapping, classify as INTERNAL_ERROR.

    Args:
        exc: Any exception.

    Returns:
        The matching ErrorCode.
    """
    for exc_type, code in _CODE_BY_TYPE:
        if isinstance(exc, exc_type):
            return ERROR_REGISTRY[code]
    return ERROR_REGISTRY["INTERNAL_ERROR"]


@dataclass
class ErrorResponse:
    """API error payload.

    Attributes:
        error: Registry code (e.g. EMPTY_CART).
        message: Sanitized, user-safe message.
        correlation_id: Id that also appears in the server log line.
        timestamp: ISO8601 UTC time of the failure.
        status_code: HTTP status to return.
        details: Extra structured context (categories, duplicates, fields).
    """

    error: str
    message: str
    correlation_id: str
    timestamp: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body. status_code is carried by the response."""
        body: dict[str, Any] = {
            "error": self.error,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
        }
        body.update(self.details)
        return body


def safe_message(exc: BaseException) -> str:
    """Return the user-safe message for an exception.

    Domain errors carry messages written for users and are passed
    through redaction. Everything else collapses to a generic message
    so stack traces and provider text never leave the process.
    """
    if isinstance(exc, DomainError) and classify_error(exc).http_status < 500:
        return sanitize_error_message(str(exc)) or INTERNAL_ERROR_MESSAGE
    return INTERNAL_ERROR_MESSAGE


def build_error_response(
    exc: BaseException, correlation_id: str | None = None
) -> ErrorResponse:
    """Build the sanitized API payload for an exception.

    Args:
        exc: The exception raised while handling the request.
        correlation_id: Existing id to reuse; a new one is generated
            when omitted.

    Returns:
        ErrorResponse ready to serialize.
    """
    definition = classify_error(exc)
    details: dict[str, Any] = {}
    if isinstance(exc, SafetyRejectionError):
        details["categories"] = list(exc.categories)
    elif isinstance(exc, DuplicateItemError):
        details["duplicates"] = exc.candidates
    elif isinstance(exc, ValidationError) and exc.field_errors:
        details["fields"] = dict(exc.field_errors)

    return ErrorResponse(
        error=definition.code,
        message=safe_message(exc),
        correlation_id=correlation_id or new_correlation_id(),
        timestamp=datetime.now(UTC).isoformat(),
        status_code=definition.http_status,
        details=details,
    )
