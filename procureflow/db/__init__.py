"""Database module for ProcureFlow state management and persistence."""

from procureflow.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from procureflow.db.models import (
    AgentAction,
    AgentConversation,
    AgentMessage,
    Base,
    Cart,
    CartItem,
    ConversationStatus,
    Item,
    ItemStatus,
    MessageSender,
    PurchaseRequest,
    PurchaseRequestItem,
    PurchaseRequestStatus,
)

__all__ = [
    # Models
    "Base",
    "Item",
    "Cart",
    "CartItem",
    "PurchaseRequest",
    "PurchaseRequestItem",
    "AgentConversation",
    "AgentMessage",
    "AgentAction",
    # Enums
    "ItemStatus",
    "ConversationStatus",
    "MessageSender",
    "PurchaseRequestStatus",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
