"""Error code registry.

Maps every error code surfaced at the API boundary to its HTTP status,
category, and remediation text. Categories:
- validation: bad or missing input, including cart/checkout preconditions
- not_found: missing catalog items, conversations, purchase requests
- conflict: duplicates, closed conversations, concurrent cart writes
- safety: prompt-injection and moderation rejections
- internal: anything unexpected
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    SAFETY = "safety"
    INTERNAL = "internal"


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Upper snake case code returned as the `error` field.
        category: Error category for grouping.
        http_status: Status code returned by the API.
        title: Short title for display.
        remediation: Action the user should take to resolve.
        is_retryable: Whether the request can be retried without changes.
    """

    code: str
    category: ErrorCategory
    http_status: int
    title: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    "VALIDATION_ERROR": ErrorCode(
        code="VALIDATION_ERROR",
        category=ErrorCategory.VALIDATION,
        http_status=400,
        title="Invalid Request",
        remediation="Check the request fields and try again.",
    ),
    "CART_LIMIT_EXCEEDED": ErrorCode(
        code="CART_LIMIT_EXCEEDED",
        category=ErrorCategory.VALIDATION,
        http_status=400,
        title="Cart Full",
        remediation="Remove items or check out before adding more.",
    ),
    "EMPTY_CART": ErrorCode(
        code="EMPTY_CART",
        category=ErrorCategory.VALIDATION,
        http_status=400,
        title="Empty Cart",
        remediation="Add items to your cart before checking out.",
    ),
    "ITEM_NOT_FOUND": ErrorCode(
        code="ITEM_NOT_FOUND",
        category=ErrorCategory.NOT_FOUND,
        http_status=404,
        title="Item Not Found",
        remediation="Search the catalog to find a valid item ID.",
    ),
    "NOT_FOUND": ErrorCode(
        code="NOT_FOUND",
        category=ErrorCategory.NOT_FOUND,
        http_status=404,
        title="Not Found",
        remediation="Check the identifier and try again.",
    ),
    "DUPLICATE_ITEM": ErrorCode(
        code="DUPLICATE_ITEM",
        category=ErrorCategory.CONFLICT,
        http_status=409,
        title="Possible Duplicate Item",
        remediation="Use an existing item or confirm the new item is different.",
    ),
    "CONFLICT": ErrorCode(
        code="CONFLICT",
        category=ErrorCategory.CONFLICT,
        http_status=409,
        title="Conflict",
        remediation="Reload the resource and try again.",
        is_retryable=True,
    ),
    "UNSAFE_INPUT": ErrorCode(
        code="UNSAFE_INPUT",
        category=ErrorCategory.SAFETY,
        http_status=400,
        title="Message Blocked",
        remediation="Rephrase your request without system or role instructions.",
    ),
    "CONTENT_FLAGGED": ErrorCode(
        code="CONTENT_FLAGGED",
        category=ErrorCategory.SAFETY,
        http_status=400,
        title="Message Flagged",
        remediation="Rephrase your request.",
    ),
    "INTERNAL_ERROR": ErrorCode(
        code="INTERNAL_ERROR",
        category=ErrorCategory.INTERNAL,
        http_status=500,
        title="Internal Error",
        remediation="Try again later. Contact support with the correlation ID if it persists.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Look up an error code definition.

    Args:
        code: Error code such as "EMPTY_CART".

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all error codes in a category.

    Args:
        category: The category to filter by.

    Returns:
        List of ErrorCode definitions in that category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
