"""Agent tool registration: canonical entrypoint.

Imports handler functions from submodules and assembles the tool
definitions used by the turn handler and the chat system prompt.
"""

import logging
from typing import Any

from procureflow.orchestrator.agent.tools.cart import (
    add_to_cart_tool,
    analyze_cart_tool,
    remove_from_cart_tool,
    update_cart_quantity_tool,
    view_cart_tool,
)
from procureflow.orchestrator.agent.tools.catalog import (
    get_item_details_tool,
    register_item_tool,
    search_catalog_tool,
)
from procureflow.orchestrator.agent.tools.checkout import checkout_tool, prepare_checkout
from procureflow.orchestrator.agent.tools.core import ToolContext
from procureflow.orchestrator.models.tool_args import TOOL_ARG_MODELS, validate_tool_args

logger = logging.getLogger(__name__)

_TOOL_SPECS: list[tuple[str, str, Any]] = [
    (
        "search_catalog",
        "Search for items in the catalog by keyword, with an optional price range.",
        search_catalog_tool,
    ),
    (
        "get_item_details",
        "Get full details for one catalog item by its ID.",
        get_item_details_tool,
    ),
    (
        "add_to_cart",
        "Add an item to the user's cart (requires item ID and quantity).",
        add_to_cart_tool,
    ),
    (
        "update_cart_quantity",
        "Change the quantity of an item already in the cart; 0 removes it.",
        update_cart_quantity_tool,
    ),
    (
        "remove_from_cart",
        "Remove an item from the cart (requires item ID).",
        remove_from_cart_tool,
    ),
    (
        "view_cart",
        "Display the current cart contents and total.",
        view_cart_tool,
    ),
    (
        "analyze_cart",
        "Cart statistics: highest, lowest and average unit price, and the "
        "most expensive line. Use for questions about prices in the cart.",
        analyze_cart_tool,
    ),
    (
        "checkout",
        "Complete the purchase request from current cart items. Confirm first.",
        checkout_tool,
    ),
    (
        "register_item",
        "Register a new catalog item (name, category, description, price).",
        register_item_tool,
    ),
]


def get_all_tool_definitions() -> list[dict[str, Any]]:
    """Return all tool definitions.

    Each definition includes name, description, input_schema, and handler.

    Returns:
        List of tool definition dicts, in prompt order.
    """
    return [
        {
            "name": name,
            "description": description,
            "input_schema": TOOL_ARG_MODELS[name].model_json_schema(by_alias=False),
            "handler": handler,
        }
        for name, description, handler in _TOOL_SPECS
    ]


TOOL_HANDLERS: dict[str, Any] = {name: handler for name, _, handler in _TOOL_SPECS}


def execute_tool(name: str, args: dict[str, Any] | None, ctx: ToolContext) -> dict[str, Any]:
    """Validate arguments, then run the named tool.

    Validation always happens before the handler runs, so a rejected
    argument never reaches a service.

    Raises:
        ToolArgumentError: Unknown tool or invalid arguments.
        DomainError: Whatever the handler's service raises.
    """
    validated = validate_tool_args(name, args)
    logger.debug("Executing tool %s", name)
    return TOOL_HANDLERS[name](validated, ctx)


__all__ = [
    "ToolContext",
    "execute_tool",
    "get_all_tool_definitions",
    "prepare_checkout",
    "TOOL_HANDLERS",
]
