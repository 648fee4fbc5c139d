"""System prompt builder for the chat fallback.

The prompt lists the available tools and usage guidelines. When the
user has items in their cart a short cart summary is appended so the
model can refer to it. The chat fallback never executes tools; it only
explains what the user can ask for.

Example:
    system = build_system_prompt(cart=cart_to_dict(cart))
    prompt = build_chat_prompt(history, "what can you do?")
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from procureflow.orchestrator.agent.tools import get_all_tool_definitions

MAX_HISTORY_MESSAGES = 10

_GUIDELINES = """\
- Be concise and friendly
- When users ask to search or find items, tell them to say e.g. "find laptops under $1500"
- Item IDs are shown in search results; cart changes need an item ID
- Always confirm before checkout; the user replies "confirm checkout" to proceed
- Ask clarifying questions for ambiguous requests
- If items are unavailable, suggest alternatives
- Never claim to have changed the cart or submitted a request yourself"""

_EXAMPLES = """\
- "find laptops" -> search_catalog with query "laptops"
- "add item 65f0c2a1b3d4e5f6a7b8c9d0 to cart quantity: 2" -> add_to_cart
- "show my cart" -> view_cart
- "what's the most expensive item in my cart?" -> analyze_cart
- "checkout" -> confirmation prompt, then "confirm checkout" -> checkout"""


def _build_tools_section(tools: Sequence[dict[str, Any]]) -> str:
    lines = [f"- {tool['name']}: {tool['description']}" for tool in tools]
    return "\n".join(lines)


def format_cart_context(cart: dict[str, Any] | None) -> str:
    """Short cart summary, or an empty string for an empty cart.

    Args:
        cart: Dict from cart_to_dict().
    """
    if not cart or not cart.get("items"):
        return ""
    lines = [
        f"- {line['name']} (x{line['quantity']}) - ${line['subtotal']:.2f}"
        for line in cart["items"]
    ]
    return (
        f"**Current Shopping Cart** ({len(cart['items'])} items, "
        f"${cart['total_cost']:.2f} total):\n"
        + "\n".join(lines)
        + "\n\nThe user can view their cart, add more items, or proceed to checkout."
    )


def build_system_prompt(
    cart: dict[str, Any] | None = None,
    tools: Sequence[dict[str, Any]] | None = None,
) -> str:
    """Build the system prompt for free-text chat completions.

    Args:
        cart: Optional cart snapshot for context.
        tools: Tool definitions; defaults to the registered set.

    Returns:
        The complete system prompt string.
    """
    tools = tools if tools is not None else get_all_tool_definitions()
    prompt = (
        "You are a helpful procurement assistant for ProcureFlow. You help users "
        "search the catalog, manage their shopping cart, and submit purchase requests.\n\n"
        f"Current date: {datetime.now().strftime('%Y-%m-%d')}\n\n"
        f"## Tools Available\n\n{_build_tools_section(tools)}\n\n"
        f"## Guidelines\n\n{_GUIDELINES}\n\n"
        f"## Example interactions\n\n{_EXAMPLES}"
    )
    cart_context = format_cart_context(cart)
    if cart_context:
        prompt += f"\n\n{cart_context}"
    return prompt


def build_chat_prompt(history: Sequence[tuple[str, str]], message: str) -> str:
    """User prompt with the last few messages of history.

    Args:
        history: (sender, content) pairs, oldest first.
        message: The new user message.
    """
    recent = list(history)[-MAX_HISTORY_MESSAGES:]
    transcript = "\n".join(f"{sender}: {content}" for sender, content in recent)
    prefix = f"Previous conversation:\n{transcript}\n\n" if transcript else ""
    return (
        f"{prefix}User: {message}\n\n"
        "Please provide a helpful response. Be conversational and guide the user "
        "on what they can do."
    )
