"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

# Status color map
STATUS_COLORS = {
    "in_progress": "blue",
    "completed": "green",
    "aborted": "red",
    "submitted": "yellow",
    "pending_approval": "yellow",
    "approved": "green",
    "rejected": "red",
    "cancelled": "dim",
}


def format_price(value: float | None) -> str:
    """Format a decimal amount as a dollar string.

    Args:
        value: Amount in dollars, or None.

    Returns:
        Formatted string like "$12.50" or "-" for None.
    """
    if value is None:
        return "-"
    return f"${value:,.2f}"


def _status(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_conversation_table(
    conversations: list[dict[str, Any]], as_json: bool = False
) -> str:
    """Format conversation summaries as a Rich table or JSON.

    Args:
        conversations: Summaries from ConversationService.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(conversations, indent=2)

    table = Table(title="Conversations")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Last message", style="dim")
    table.add_column("Updated")
    for c in conversations:
        table.add_row(
            c["id"][:8],
            c["title"],
            _status(c["status"]),
            c["last_message_preview"],
            c["updated_at"][:19],
        )
    return _render(table)


def format_purchase_request_table(
    requests: list[dict[str, Any]], as_json: bool = False
) -> str:
    """Format purchase requests as a Rich table or JSON."""
    if as_json:
        return json.dumps(requests, indent=2)

    table = Table(title="Purchase Requests")
    table.add_column("Number", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Lines", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Source")
    table.add_column("Created")
    for pr in requests:
        table.add_row(
            pr["request_number"],
            _status(pr["status"]),
            str(len(pr["items"])),
            format_price(pr["total"]),
            pr["source"],
            pr["created_at"][:19],
        )
    return _render(table)


def format_cart(cart: dict[str, Any]) -> str:
    """Render a cart snapshot as a table with a total footer."""
    if not cart["items"]:
        return _render(Panel("Cart is empty", title="Cart"))

    table = Table(title=f"Cart ({cart['item_count']} items)", show_footer=True)
    table.add_column("Item", footer="Total")
    table.add_column("Unit price", justify="right")
    table.add_column("Qty", justify="right")
    table.add_column("Subtotal", justify="right", footer=format_price(cart["total_cost"]))
    for line in cart["items"]:
        table.add_row(
            line["name"],
            format_price(line["unit_price"]),
            str(line["quantity"]),
            format_price(line["subtotal"]),
        )
    return _render(table)


def format_catalog_items(items: list[dict[str, Any]]) -> str:
    """Render catalog items returned by a search."""
    table = Table(title="Catalog")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Price", justify="right")
    for item in items:
        table.add_row(item["id"], item["name"], item["category"], format_price(item["price"]))
    return _render(table)
