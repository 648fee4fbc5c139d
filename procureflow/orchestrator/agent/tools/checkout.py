"""Checkout tool handlers.

`prepare_checkout` builds the confirmation snapshot shown before any
side effect. `checkout_tool` runs the atomic cart-to-purchase-request
conversion and is only dispatched once the user has confirmed.
"""

import logging
from typing import Any

from procureflow.errors import EmptyCartError
from procureflow.orchestrator.agent.tools.core import ToolContext, _require_user
from procureflow.orchestrator.models.tool_args import CheckoutArgs
from procureflow.services.cart_service import CartService, cart_to_dict
from procureflow.services.checkout_service import CheckoutService, purchase_request_to_dict

logger = logging.getLogger(__name__)


def prepare_checkout(args: CheckoutArgs, ctx: ToolContext) -> dict[str, Any]:
    """Snapshot the cart for a confirmation prompt. No writes.

    Raises:
        AuthenticationRequiredError: For anonymous callers.
        EmptyCartError: When there is nothing to check out.
    """
    user_id = _require_user(ctx, "checkout")
    cart = CartService(ctx.db).find_cart(user_id)
    if cart is None or not cart.items:
        raise EmptyCartError()
    return {
        "requires_confirmation": True,
        "notes": args.notes,
        "cart": cart_to_dict(cart),
    }


def checkout_tool(args: CheckoutArgs, ctx: ToolContext) -> dict[str, Any]:
    """Convert the cart into a submitted purchase request.

    Commits on success and rolls back on failure; see
    CheckoutService.checkout_cart.
    """
    user_id = _require_user(ctx, "checkout")
    pr = CheckoutService(ctx.db).checkout_cart(
        user_id,
        notes=args.notes,
        shipping_address=args.shipping_address.model_dump()
        if args.shipping_address
        else None,
        payment_method=args.payment_method,
        source="agent",
    )
    logger.info("Agent checkout created %s", pr.request_number)
    return {"purchase_request": purchase_request_to_dict(pr)}
