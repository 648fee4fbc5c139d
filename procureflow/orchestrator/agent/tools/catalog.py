"""Catalog tool handlers: search, item details, item registration."""

import logging
from typing import Any

from procureflow.errors import DuplicateItemError
from procureflow.orchestrator.agent.tools.core import ToolContext
from procureflow.orchestrator.models.tool_args import (
    GetItemDetailsArgs,
    RegisterItemArgs,
    SearchCatalogArgs,
)
from procureflow.services.catalog_service import CatalogService, item_to_dict

logger = logging.getLogger(__name__)


def search_catalog_tool(args: SearchCatalogArgs, ctx: ToolContext) -> dict[str, Any]:
    """Search active catalog items.

    Args:
        args: Validated search arguments.
        ctx: Tool context.

    Returns:
        Dict with query, items (ranked), and count.
    """
    svc = CatalogService(ctx.db, cache=ctx.search_cache)
    items = svc.search_items(
        args.query.strip(),
        limit=args.limit or 10,
        max_price=args.max_price,
        min_price=args.min_price,
        category=args.category,
    )
    return {
        "query": args.query.strip(),
        "max_price": float(args.max_price) if args.max_price is not None else None,
        "items": items,
        "count": len(items),
    }


def get_item_details_tool(args: GetItemDetailsArgs, ctx: ToolContext) -> dict[str, Any]:
    """Fetch one active item."""
    item = CatalogService(ctx.db, cache=ctx.search_cache).get_item(
        args.item_id, active_only=True
    )
    return {"item": item_to_dict(item)}


def register_item_tool(args: RegisterItemArgs, ctx: ToolContext) -> dict[str, Any]:
    """Register a catalog item, or report the duplicates blocking it.

    A duplicate match is a normal outcome rather than a failure: the
    result carries the candidates and the user is asked to confirm.

    Returns:
        {"created": True, "item": {...}} or
        {"created": False, "duplicates": [...]}.
    """
    svc = CatalogService(ctx.db, cache=ctx.search_cache)
    try:
        item = svc.create_item(
            name=args.name,
            category=args.category,
            description=args.description,
            price=args.price,
            created_by_user_id=ctx.user_id,
            confirm_duplicate=args.confirm_duplicate,
        )
    except DuplicateItemError as exc:
        logger.info("register_item blocked by %d duplicate(s)", len(exc.candidates))
        return {"created": False, "duplicates": exc.candidates}
    return {"created": True, "item": item_to_dict(item)}
