"""Error handling framework for ProcureFlow.

This package provides:
- Typed domain exceptions raised by services
- Error code registry mapping codes to HTTP status and remediation
- Error classification and sanitized API payloads
"""

from procureflow.errors.domain import (
    AuthenticationRequiredError,
    CartConflictError,
    CartLimitError,
    ConflictError,
    ContentFlaggedError,
    ConversationClosedError,
    ConversationLimitError,
    ConversationNotFoundError,
    DomainError,
    DuplicateItemError,
    EmptyCartError,
    ItemNotFoundError,
    NotFoundError,
    PromptInjectionError,
    PurchaseRequestNotFoundError,
    SafetyRejectionError,
    ValidationError,
)
from procureflow.errors.formatter import (
    INTERNAL_ERROR_MESSAGE,
    ErrorResponse,
    build_error_response,
    classify_error,
    new_correlation_id,
)
from procureflow.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Domain
    "DomainError",
    "ValidationError",
    "AuthenticationRequiredError",
    "NotFoundError",
    "ItemNotFoundError",
    "ConversationNotFoundError",
    "PurchaseRequestNotFoundError",
    "ConflictError",
    "DuplicateItemError",
    "CartConflictError",
    "ConversationClosedError",
    "ConversationLimitError",
    "CartLimitError",
    "EmptyCartError",
    "SafetyRejectionError",
    "PromptInjectionError",
    "ContentFlaggedError",
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "ErrorResponse",
    "INTERNAL_ERROR_MESSAGE",
    "build_error_response",
    "classify_error",
    "new_correlation_id",
]
