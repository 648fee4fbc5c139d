"""Cart tool handlers. All of them require a signed-in user."""

from typing import Any

from procureflow.orchestrator.agent.tools.core import ToolContext, _require_user
from procureflow.orchestrator.models.tool_args import (
    AddToCartArgs,
    AnalyzeCartArgs,
    RemoveFromCartArgs,
    UpdateCartQuantityArgs,
    ViewCartArgs,
)
from procureflow.services.cart_service import (
    CartService,
    cart_analytics,
    cart_to_dict,
    empty_cart_dict,
)


def add_to_cart_tool(args: AddToCartArgs, ctx: ToolContext) -> dict[str, Any]:
    """Add an item to the cart, merging with an existing line.

    Returns:
        Dict with the added item_id, quantity, line name, and cart snapshot.
    """
    user_id = _require_user(ctx, "add items to your cart")
    cart = CartService(ctx.db).add_item_to_cart(user_id, args.item_id, args.quantity)
    line = next((li for li in cart.items if li.item_id == args.item_id), None)
    return {
        "item_id": args.item_id,
        "item_name": line.item_name if line else None,
        "quantity": args.quantity,
        "cart": cart_to_dict(cart),
    }


def update_cart_quantity_tool(
    args: UpdateCartQuantityArgs, ctx: ToolContext
) -> dict[str, Any]:
    user_id = _require_user(ctx, "modify your cart")
    cart = CartService(ctx.db).update_cart_item_quantity(
        user_id, args.item_id, args.quantity
    )
    return {
        "item_id": args.item_id,
        "quantity": args.quantity,
        "removed": args.quantity == 0,
        "cart": cart_to_dict(cart),
    }


def remove_from_cart_tool(args: RemoveFromCartArgs, ctx: ToolContext) -> dict[str, Any]:
    user_id = _require_user(ctx, "modify your cart")
    cart = CartService(ctx.db).remove_cart_item(user_id, args.item_id)
    return {"item_id": args.item_id, "removed": True, "cart": cart_to_dict(cart)}


def view_cart_tool(args: ViewCartArgs, ctx: ToolContext) -> dict[str, Any]:
    """Read-only cart snapshot. Never creates a cart."""
    user_id = _require_user(ctx, "view your cart")
    cart = CartService(ctx.db).find_cart(user_id)
    if cart is None:
        return {"cart": empty_cart_dict(user_id)}
    return {"cart": cart_to_dict(cart)}


def analyze_cart_tool(args: AnalyzeCartArgs, ctx: ToolContext) -> dict[str, Any]:
    """Unit-price statistics for the user's cart. Read-only."""
    user_id = _require_user(ctx, "analyze your cart")
    return {"analytics": cart_analytics(CartService(ctx.db).find_cart(user_id))}
