"""Shared internals for procurement agent tools.

Contains the per-turn ToolContext handed to every handler and small
helpers the handler submodules share. Handlers receive validated
argument models, call the domain services, and return plain dicts.
Domain errors propagate to the turn handler, which records them.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from procureflow.errors import AuthenticationRequiredError
from procureflow.services.search_cache import NullSearchCache, SearchCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass
class ToolContext:
    """Per-turn state shared by tool handlers.

    Attributes:
        db: Request-scoped session. Handlers flush, the caller commits.
        user_id: Authenticated user, or None for anonymous conversations.
        search_cache: Catalog search cache shared across turns.
    """

    db: Session
    user_id: str | None = None
    search_cache: SearchCache = field(default_factory=NullSearchCache)


def _require_user(ctx: ToolContext, operation: str) -> str:
    """Return the user id or raise for anonymous callers."""
    if not ctx.user_id:
        raise AuthenticationRequiredError(operation)
    return ctx.user_id
