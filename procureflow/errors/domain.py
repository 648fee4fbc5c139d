"""Typed domain exceptions for API error mapping.

Services raise these; routes and the FastAPI exception handlers map
them to HTTP status codes through the error registry instead of
matching on message strings.

Usage:
    # In service layer
    raise ItemNotFoundError(item_id)

    # In route handler
    try:
        item = service.get_item(item_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""

from typing import Any


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate). Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400.

    Attributes:
        field_errors: Optional mapping of field path to error message.
    """

    def __init__(
        self, message: str, field_errors: dict[str, str] | None = None
    ) -> None:
        super().__init__(message)
        self.field_errors = field_errors or {}


class AuthenticationRequiredError(ValidationError):
    """Operation needs a user id and none was supplied."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"You must be signed in to {operation}.")
        self.operation = operation


# Catalog


class ItemNotFoundError(NotFoundError):
    """Catalog item missing or not active. Maps to HTTP 404."""

    def __init__(self, item_id: str) -> None:
        super().__init__("Item", item_id)
        self.item_id = item_id


class DuplicateItemError(ConflictError):
    """Register-item found likely duplicates. Maps to HTTP 409.

    Attributes:
        candidates: Plain dicts (id, name, category, price) of the
            existing items that matched.
    """

    def __init__(self, candidates: list[dict[str, Any]]) -> None:
        super().__init__(
            f"Found {len(candidates)} similar item(s) already in the catalog"
        )
        self.candidates = candidates


# Cart


class CartLimitError(DomainError):
    """Cart already holds the maximum number of distinct lines."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Cart cannot contain more than {limit} different items"
        )
        self.limit = limit


class CartConflictError(ConflictError):
    """Cart was modified concurrently. Maps to HTTP 409."""

    def __init__(self, user_id: str) -> None:
        super().__init__("Cart was modified by another request. Please retry.")
        self.user_id = user_id


class EmptyCartError(DomainError):
    """Checkout attempted on an empty cart. Maps to HTTP 400."""

    def __init__(self) -> None:
        super().__init__("Cart is empty. Add items before checking out.")


# Purchase requests


class PurchaseRequestNotFoundError(NotFoundError):
    """Purchase request missing or owned by another user."""

    def __init__(self, request_id: str) -> None:
        super().__init__("Purchase request", request_id)


# Conversations


class ConversationNotFoundError(NotFoundError):
    """Conversation missing or owned by another user."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__("Conversation", conversation_id)


class ConversationClosedError(ConflictError):
    """Conversation is in a terminal state. Maps to HTTP 409."""

    def __init__(self, conversation_id: str, status: str) -> None:
        super().__init__(f"Conversation is {status} and cannot be changed")
        self.conversation_id = conversation_id
        self.status = status


class ConversationLimitError(ValidationError):
    """Conversation reached its message cap."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Conversation has reached the limit of {limit} messages. "
            "Start a new conversation to continue."
        )
        self.limit = limit


# Input safety


class SafetyRejectionError(DomainError):
    """Message rejected before processing. Maps to HTTP 400.

    Attributes:
        categories: Generic category labels; never the offending text.
    """

    def __init__(self, message: str, categories: list[str]) -> None:
        super().__init__(message)
        self.categories = categories


class PromptInjectionError(SafetyRejectionError):
    """Input matched prompt-injection patterns."""

    def __init__(self, categories: list[str], severity: str) -> None:
        labels = ", ".join(c.replace("_", " ") for c in categories) or "unsafe input"
        super().__init__(
            f"Your message was blocked by our input safety checks ({labels}). "
            "Please rephrase your request.",
            categories,
        )
        self.severity = severity


class ContentFlaggedError(SafetyRejectionError):
    """Moderation classifier flagged the message."""

    def __init__(self, categories: list[str]) -> None:
        super().__init__(
            "Your message was flagged by content moderation and cannot be processed.",
            categories,
        )
