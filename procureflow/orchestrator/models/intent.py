"""Intent models for natural language procurement messages.

The router classifies every message into exactly one of these variants.
They form a tagged union discriminated on `kind`, so the turn handler can
match over every variant and a new kind cannot be silently ignored.
"""

from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _IntentBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class SearchIntent(_IntentBase):
    """Catalog search with an optional price ceiling."""

    kind: Literal["search"] = "search"
    query: str = Field(..., min_length=1, description="Residual search keywords")
    max_price: Optional[Decimal] = Field(
        default=None, ge=0, description="Inclusive price ceiling"
    )


class ItemDetailsIntent(_IntentBase):
    kind: Literal["item_details"] = "item_details"
    item_id: str


class AddToCartIntent(_IntentBase):
    """Add an item by id. Quantity defaults to 1."""

    kind: Literal["add_to_cart"] = "add_to_cart"
    item_id: str
    quantity: int = 1


class UpdateCartQuantityIntent(_IntentBase):
    kind: Literal["update_cart_quantity"] = "update_cart_quantity"
    item_id: str
    quantity: int


class RemoveFromCartIntent(_IntentBase):
    kind: Literal["remove_from_cart"] = "remove_from_cart"
    item_id: str


class ViewCartIntent(_IntentBase):
    kind: Literal["view_cart"] = "view_cart"


class AnalyzeCartIntent(_IntentBase):
    """Price statistics over the cart (highest, lowest, average unit price)."""

    kind: Literal["analyze_cart"] = "analyze_cart"


class CheckoutIntent(_IntentBase):
    """Checkout request.

    Attributes:
        confirmed: False produces a confirmation prompt and no side effects.
        notes: Optional justification captured from "notes: ..." text.
    """

    kind: Literal["checkout"] = "checkout"
    confirmed: bool = False
    notes: Optional[str] = None


class RegisterItemIntent(_IntentBase):
    """Register a new catalog item from labelled captures."""

    kind: Literal["register_item"] = "register_item"
    name: str
    category: str
    description: str
    price: Decimal
    confirm_duplicate: bool = False


class ClarifyIntent(_IntentBase):
    """A rule fired but a required argument could not be extracted.

    Attributes:
        tool: The tool the user most likely wanted.
        question: Clarifying question returned instead of guessing.
    """

    kind: Literal["clarify"] = "clarify"
    tool: str
    question: str


class ChatIntent(_IntentBase):
    """No rule fired; answered by free-text completion."""

    kind: Literal["chat"] = "chat"


Intent = Annotated[
    Union[
        SearchIntent,
        ItemDetailsIntent,
        AddToCartIntent,
        UpdateCartQuantityIntent,
        RemoveFromCartIntent,
        ViewCartIntent,
        AnalyzeCartIntent,
        CheckoutIntent,
        RegisterItemIntent,
        ClarifyIntent,
        ChatIntent,
    ],
    Field(discriminator="kind"),
]

intent_adapter: TypeAdapter[Intent] = TypeAdapter(Intent)

# Tool invoked for each tool-backed intent kind.
INTENT_TOOLS: dict[str, str] = {
    "search": "search_catalog",
    "item_details": "get_item_details",
    "add_to_cart": "add_to_cart",
    "update_cart_quantity": "update_cart_quantity",
    "remove_from_cart": "remove_from_cart",
    "view_cart": "view_cart",
    "analyze_cart": "analyze_cart",
    "checkout": "checkout",
    "register_item": "register_item",
}
