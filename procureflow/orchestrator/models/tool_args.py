"""Per-tool argument schemas.

Every tool validates its arguments against one of these models before
any service is touched. Field names are snake_case; the camelCase names
used by model tool calls are accepted as aliases.
"""

from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from procureflow.errors import ValidationError


class ToolArgumentError(ValidationError):
    """Tool arguments failed schema validation.

    Attributes:
        tool: Tool whose arguments were rejected.
        field_errors: Flattened field path -> message.
    """

    def __init__(self, tool: str, field_errors: dict[str, str]) -> None:
        detail = "; ".join(f"{k}: {v}" for k, v in field_errors.items())
        super().__init__(f"Invalid arguments for {tool}: {detail}", field_errors=field_errors)
        self.tool = tool


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _ItemRef(_ToolArgs):
    item_id: str = Field(..., alias="itemId", min_length=1, max_length=100)


class SearchCatalogArgs(_ToolArgs):
    """search_catalog arguments."""

    query: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, alias="minPrice", ge=0)
    max_price: Optional[Decimal] = Field(default=None, alias="maxPrice", ge=0)
    limit: Optional[int] = Field(default=None, ge=1, le=100)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Search query cannot be only whitespace")
        return value

    @model_validator(mode="after")
    def price_range_ordered(self) -> "SearchCatalogArgs":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("Minimum price must be less than or equal to maximum price")
        return self


class GetItemDetailsArgs(_ItemRef):
    """get_item_details arguments."""


class AddToCartArgs(_ItemRef):
    """add_to_cart arguments. The cart itself caps a line at 999."""

    quantity: int = Field(default=1, ge=1, le=1000, strict=True)


class RemoveFromCartArgs(_ItemRef):
    """remove_from_cart arguments."""


class UpdateCartQuantityArgs(_ItemRef):
    """update_cart_quantity arguments. 0 removes the line."""

    quantity: int = Field(..., ge=0, le=1000, strict=True)


class ViewCartArgs(_ToolArgs):
    """view_cart takes no arguments."""


class AnalyzeCartArgs(_ToolArgs):
    """analyze_cart takes no arguments."""


class ShippingAddress(_ToolArgs):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=50)
    zip_code: str = Field(..., alias="zipCode", min_length=5, max_length=10)
    country: str = Field(..., min_length=2, max_length=50)


class CheckoutArgs(_ToolArgs):
    """checkout arguments."""

    shipping_address: Optional[ShippingAddress] = Field(default=None, alias="shippingAddress")
    payment_method: Optional[Literal["credit_card", "purchase_order", "invoice"]] = Field(
        default=None, alias="paymentMethod"
    )
    notes: Optional[str] = Field(default=None, max_length=1000)


class RegisterItemArgs(_ToolArgs):
    """register_item arguments."""

    name: str = Field(..., min_length=2, max_length=200)
    category: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    price: Decimal = Field(..., gt=0, decimal_places=2)
    confirm_duplicate: bool = Field(default=False, alias="confirmDuplicate")


TOOL_ARG_MODELS: dict[str, type[_ToolArgs]] = {
    "search_catalog": SearchCatalogArgs,
    "get_item_details": GetItemDetailsArgs,
    "add_to_cart": AddToCartArgs,
    "remove_from_cart": RemoveFromCartArgs,
    "update_cart_quantity": UpdateCartQuantityArgs,
    "view_cart": ViewCartArgs,
    "analyze_cart": AnalyzeCartArgs,
    "checkout": CheckoutArgs,
    "register_item": RegisterItemArgs,
}


def flatten_errors(exc: PydanticValidationError) -> dict[str, str]:
    """Collapse pydantic errors to {"a.b": message}."""
    flattened: dict[str, str] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"]) or "_root"
        flattened.setdefault(path, error["msg"])
    return flattened


def validate_tool_args(tool: str, args: dict[str, Any] | None) -> _ToolArgs:
    """Validate raw arguments for a tool.

    Args:
        tool: Tool name.
        args: Arguments as received (snake_case or camelCase keys).

    Returns:
        The validated argument model.

    Raises:
        ToolArgumentError: On unknown tool or invalid arguments.
    """
    model = TOOL_ARG_MODELS.get(tool)
    if model is None:
        raise ToolArgumentError(tool, {"tool": f"Unknown tool '{tool}'"})
    try:
        return model.model_validate(args or {})
    except PydanticValidationError as exc:
        raise ToolArgumentError(tool, flatten_errors(exc)) from exc
