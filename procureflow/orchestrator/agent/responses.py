"""Turn tool results into user-facing replies.

Each reply is a short markdown-ish summary plus optional structured
metadata (items, cart, checkout_confirmation, purchase_request,
duplicates) that clients use for richer rendering. Error replies name
the class of failure and never include stack traces or provider text.
"""

from dataclasses import dataclass, field
from typing import Any

from procureflow.errors import ErrorCategory, classify_error
from procureflow.errors.formatter import safe_message

MAX_LISTED_ITEMS = 10

FALLBACK_CHAT_REPLY = (
    "I apologize, but I encountered an issue processing your request. "
    "Could you please rephrase that?"
)


@dataclass
class AgentReply:
    """Reply text plus client metadata.

    Attributes:
        text: Message shown to the user.
        metadata: Structured payload for rendering, or None.
    """

    text: str
    metadata: dict[str, Any] | None = field(default=None)


def _price(value: float) -> str:
    return f"${value:,.2f}"


def _cart_totals(cart: dict[str, Any]) -> str:
    return (
        f"Cart total: {_price(cart['total_cost'])} "
        f"({cart['line_count']} item types, {cart['item_count']} total items)."
    )


def _format_item_list(items: list[dict[str, Any]]) -> str:
    return "\n\n".join(
        f"{idx}. {item['name']} ({item['category']}) - {_price(item['price'])}\n"
        f"   ID: {item['id']}\n"
        f"   {item['description'] or 'No description available'}"
        for idx, item in enumerate(items[:MAX_LISTED_ITEMS], start=1)
    )


def _format_cart_lines(cart: dict[str, Any]) -> str:
    return "\n\n".join(
        f"{idx}. {line['name']} × {line['quantity']} = {_price(line['subtotal'])}\n"
        f"   ID: {line['item_id']} | Unit price: {_price(line['unit_price'])}"
        for idx, line in enumerate(cart["items"], start=1)
    )


def _line_name(cart: dict[str, Any], item_id: str) -> str | None:
    return next((li["name"] for li in cart["items"] if li["item_id"] == item_id), None)


def _search_reply(result: dict[str, Any]) -> AgentReply:
    items, query = result["items"], result["query"]
    ceiling = f" under {_price(result['max_price'])}" if result.get("max_price") is not None else ""
    if not items:
        return AgentReply(
            f'No items found matching "{query}"{ceiling}. Try different keywords '
            "or browse the full catalog."
        )
    more = "\n\n(Showing top 10 results)" if len(items) > MAX_LISTED_ITEMS else ""
    return AgentReply(
        f'Found {len(items)} item(s) matching "{query}"{ceiling}:\n\n'
        f"{_format_item_list(items)}{more}",
        {"items": items},
    )


def _details_reply(result: dict[str, Any]) -> AgentReply:
    item = result["item"]
    extras = []
    if item.get("unit"):
        extras.append(f"Unit: {item['unit']}")
    if item.get("preferred_supplier"):
        extras.append(f"Preferred supplier: {item['preferred_supplier']}")
    tail = ("\n" + " | ".join(extras)) if extras else ""
    return AgentReply(
        f"**{item['name']}** ({item['category']}) - {_price(item['price'])}\n"
        f"ID: {item['id']}\n{item['description']}{tail}",
        {"items": [item]},
    )


def _add_reply(result: dict[str, Any]) -> AgentReply:
    cart = result["cart"]
    name = result.get("item_name") or "item"
    return AgentReply(
        f'Added {result["quantity"]} × "{name}" to your cart. {_cart_totals(cart)}',
        {"cart": cart},
    )


def _update_reply(result: dict[str, Any]) -> AgentReply:
    cart = result["cart"]
    if result["removed"]:
        return AgentReply(
            f"Item removed from cart. Cart now has {cart['line_count']} item type(s). "
            f"Total: {_price(cart['total_cost'])}.",
            {"cart": cart},
        )
    name = _line_name(cart, result["item_id"]) or result["item_id"]
    return AgentReply(
        f'Updated "{name}" to quantity {result["quantity"]}. {_cart_totals(cart)}',
        {"cart": cart},
    )


def _remove_reply(result: dict[str, Any]) -> AgentReply:
    cart = result["cart"]
    return AgentReply(
        f"Item removed from cart. Cart now has {cart['line_count']} item type(s). "
        f"Total: {_price(cart['total_cost'])}.",
        {"cart": cart},
    )


def _view_reply(result: dict[str, Any]) -> AgentReply:
    cart = result["cart"]
    if not cart["items"]:
        return AgentReply("Your cart is empty. Use search to find items to add.", {"cart": cart})
    return AgentReply(
        f"Your cart contains {cart['line_count']} item type(s) "
        f"({cart['item_count']} total items):\n\n{_format_cart_lines(cart)}\n\n"
        f"**Total: {_price(cart['total_cost'])}**",
        {"cart": cart},
    )


def _analyze_reply(result: dict[str, Any]) -> AgentReply:
    stats = result["analytics"]
    if not stats["line_count"]:
        return AgentReply(
            "Your cart is empty, so there are no statistics to analyze.",
            {"cart_analytics": stats},
        )
    highest, lowest = stats["highest_unit_price"], stats["lowest_unit_price"]
    priciest = stats["most_expensive_line"]
    return AgentReply(
        f"Highest unit price: {highest['name']} at {_price(highest['price'])}.\n"
        f"Lowest unit price: {lowest['name']} at {_price(lowest['price'])}.\n"
        f"Average unit price: {_price(stats['average_unit_price'])}.\n"
        f"Largest line: {priciest['name']} × {priciest['quantity']} = "
        f"{_price(priciest['price'])}.\n"
        f"{_cart_totals(stats)}",
        {"cart_analytics": stats},
    )


def _checkout_reply(result: dict[str, Any]) -> AgentReply:
    pr = result["purchase_request"]
    notes = f" Notes: {pr['notes']}" if pr.get("notes") else ""
    return AgentReply(
        f"Checkout successful! Purchase request {pr['request_number']} created with "
        f"{len(pr['items'])} item(s). Total: {_price(pr['total'])}. "
        f"Status: {pr['status']}.{notes}",
        {
            "purchase_request": pr,
            "checkout_confirmation": {
                "request_number": pr["request_number"],
                "total": pr["total"],
                "item_count": len(pr["items"]),
            },
        },
    )


def _register_reply(result: dict[str, Any]) -> AgentReply:
    if result["created"]:
        item = result["item"]
        return AgentReply(
            f'Registered "{item["name"]}" in {item["category"]} at '
            f"{_price(item['price'])}. ID: {item['id']}",
            {"items": [item]},
        )
    duplicates = result["duplicates"]
    return AgentReply(
        f"I found {len(duplicates)} similar item(s) already in the catalog:\n\n"
        f"{_format_item_list(duplicates)}\n\n"
        'If you still want to register it, repeat the request and add "register anyway".',
        {"duplicates": duplicates},
    )


_REPLY_BUILDERS = {
    "search_catalog": _search_reply,
    "get_item_details": _details_reply,
    "add_to_cart": _add_reply,
    "update_cart_quantity": _update_reply,
    "remove_from_cart": _remove_reply,
    "view_cart": _view_reply,
    "analyze_cart": _analyze_reply,
    "checkout": _checkout_reply,
    "register_item": _register_reply,
}


def synthesize_reply(tool: str, result: dict[str, Any]) -> AgentReply:
    """Build the reply for a successful tool result.

    Raises:
        ValueError: For a tool without a reply builder.
    """
    builder = _REPLY_BUILDERS.get(tool)
    if builder is None:
        raise ValueError(f"No reply builder for tool '{tool}'")
    return builder(result)


def checkout_confirmation_reply(prepared: dict[str, Any]) -> AgentReply:
    """Ask the user to confirm a checkout. Nothing has been written."""
    cart = prepared["cart"]
    return AgentReply(
        "Are you sure you want to proceed with checkout? Your cart has "
        f"{cart['line_count']} item type(s) ({cart['item_count']} total items) totalling "
        f"{_price(cart['total_cost'])}. They will be submitted as a purchase request. "
        "Reply with 'confirm checkout' to proceed.",
        {"checkout_confirmation": cart},
    )


_ERROR_PREFIX = {
    ErrorCategory.VALIDATION: "I couldn't complete that request",
    ErrorCategory.SAFETY: "I couldn't complete that request",
    ErrorCategory.NOT_FOUND: "I couldn't find what you asked for",
    ErrorCategory.CONFLICT: "That request conflicts with the current state",
}


def error_kind(exc: BaseException) -> str:
    """validation, not_found, conflict, or internal."""
    category = classify_error(exc).category
    if category is ErrorCategory.SAFETY:
        return ErrorCategory.VALIDATION.value
    return category.value


def synthesize_error_reply(tool: str, exc: BaseException) -> AgentReply:
    """Build a safe reply for a failed tool call.

    Validation, not-found and conflict errors carry a sanitized version
    of their domain message. Anything else gets a generic apology.
    """
    definition = classify_error(exc)
    kind = error_kind(exc)
    label = tool.replace("_", " ")
    if definition.category is ErrorCategory.INTERNAL:
        text = (
            f"Sorry, something went wrong while trying to {label}. "
            "Please try again or contact support if the problem persists."
        )
    else:
        text = f"{_ERROR_PREFIX[definition.category]}: {safe_message(exc)}"
        if definition.remediation:
            text += f" {definition.remediation}"
    return AgentReply(text, {"error": {"kind": kind, "code": definition.code, "tool": tool}})
