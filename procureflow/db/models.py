"""SQLAlchemy ORM models for the ProcureFlow state database.

This module defines the catalog, cart, purchase request, and agent
conversation models. Uses SQLAlchemy 2.0 style with Mapped and
mapped_column. Money is stored as integer cents and exposed as Decimal
through read-only properties.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

# Conversation limits
MAX_CONVERSATION_MESSAGES = 500
MAX_MESSAGE_LENGTH = 10_000
MAX_TITLE_LENGTH = 120
MAX_PREVIEW_LENGTH = 120
MAX_SUMMARY_LENGTH = 1000

# Cart limits
MAX_CART_ITEMS = 50
MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 999


def generate_object_id() -> str:
    """Generate a 24-character hex identifier for primary keys."""
    return uuid4().hex[:24]


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal amount."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def decimal_to_cents(amount: Decimal | float | int | str) -> int:
    """Convert a money amount to integer cents, rounding half-up."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# Enums matching the database schema constraints


class ItemStatus(str, Enum):
    """Catalog item lifecycle status."""

    active = "active"
    pending_review = "pending_review"
    inactive = "inactive"


class ConversationStatus(str, Enum):
    """Status values for agent conversations.

    Lifecycle: in_progress -> completed/aborted (terminal)
    """

    in_progress = "in_progress"
    completed = "completed"
    aborted = "aborted"


class MessageSender(str, Enum):
    """Sender of a conversation message."""

    user = "user"
    agent = "agent"
    system = "system"


class PurchaseRequestStatus(str, Enum):
    """Status values for purchase requests."""

    submitted = "submitted"
    pending_approval = "pending_approval"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Catalog


class Item(Base):
    """Catalog item available for procurement.

    Attributes:
        id: 24-char hex primary key
        name: Display name (2-200 chars)
        category: Category label (2-100 chars)
        description: Long description (10-2000 chars)
        price_cents: Estimated unit price in cents (must be > 0)
        unit: Optional unit of measure ("each", "box")
        preferred_supplier: Optional supplier name
        status: active, pending_review, or inactive
        created_by_user_id: User who registered the item, if known
    """

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    preferred_supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ItemStatus.active.value
    )
    created_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index("idx_items_status", "status"),
        Index("idx_items_category", "category"),
    )

    @property
    def price(self) -> Decimal:
        return cents_to_decimal(self.price_cents)

    def __repr__(self) -> str:
        return f"<Item(id={self.id!r}, name={self.name!r}, status={self.status!r})>"


# Cart


class Cart(Base):
    """Per-user shopping cart.

    The version column is SQLAlchemy's optimistic concurrency counter:
    every flush that updates the cart row checks and bumps it, so a
    concurrent writer holding a stale copy fails with StaleDataError.
    Cart mutations must touch updated_at for the check to fire.
    """

    __tablename__ = "carts"

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.added_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_cost_cents(self) -> int:
        return sum(line.subtotal_cents for line in self.items)

    @property
    def total_cost(self) -> Decimal:
        return cents_to_decimal(self.total_cost_cents)

    @property
    def item_count(self) -> int:
        """Total units across all lines."""
        return sum(line.quantity for line in self.items)

    def __repr__(self) -> str:
        return f"<Cart(user_id={self.user_id!r}, lines={len(self.items)})>"


class CartItem(Base):
    """Cart line with a name/price snapshot taken at add time.

    item_id is a plain reference, not a foreign key, so a line survives
    later catalog edits or deletes.
    """

    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "item_id", name="uq_cart_items_cart_item"),
    )

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    cart_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(24), nullable=False)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def unit_price(self) -> Decimal:
        return cents_to_decimal(self.unit_price_cents)

    @property
    def subtotal(self) -> Decimal:
        return cents_to_decimal(self.subtotal_cents)

    def __repr__(self) -> str:
        return f"<CartItem(item_id={self.item_id!r}, qty={self.quantity})>"


# Purchase requests


class PurchaseRequest(Base):
    """Purchase request created by checkout.

    Attributes:
        request_number: Globally unique PR-YYYY-#### identifier
        user_id: Requesting user
        total_cents: Sum of line subtotals at checkout time
        notes: Optional justification text
        source: 'agent' or 'ui'
        status: Starts at 'submitted'
        shipping_address_json: Optional JSON address captured at checkout
        payment_method: Optional credit_card, purchase_order, or invoice
    """

    __tablename__ = "purchase_requests"

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    request_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="agent")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseRequestStatus.submitted.value
    )
    shipping_address_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    items: Mapped[list["PurchaseRequestItem"]] = relationship(
        "PurchaseRequestItem",
        back_populates="purchase_request",
        cascade="all, delete-orphan",
        order_by="PurchaseRequestItem.line_number",
    )

    __table_args__ = (
        Index("idx_purchase_requests_user_created", "user_id", "created_at"),
    )

    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)

    def __repr__(self) -> str:
        return (
            f"<PurchaseRequest(number={self.request_number!r}, "
            f"status={self.status!r})>"
        )


class PurchaseRequestItem(Base):
    """Immutable snapshot of a cart line at checkout time."""

    __tablename__ = "purchase_request_items"

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    purchase_request_id: Mapped[str] = mapped_column(
        String(24),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(24), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    purchase_request: Mapped["PurchaseRequest"] = relationship(
        "PurchaseRequest", back_populates="items"
    )

    @property
    def unit_price(self) -> Decimal:
        return cents_to_decimal(self.unit_price_cents)

    @property
    def subtotal(self) -> Decimal:
        return cents_to_decimal(self.subtotal_cents)


# Agent conversations


class AgentConversation(Base):
    """Persistent agent conversation.

    Attributes:
        id: 24-char hex primary key.
        user_id: Owner, or None for anonymous/demo conversations.
        title: Title derived from the first message (<= 120 chars).
        last_message_preview: Latest message text (<= 120 chars).
        status: in_progress, completed, or aborted.
        summary: Optional free-text summary (<= 1000 chars).
        context_data: JSON blob of router state (e.g. pending checkout).
    """

    __tablename__ = "agent_conversations"
    __table_args__ = (
        Index("ix_agentconv_user_updated", "user_id", "updated_at"),
    )

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(
        String(MAX_TITLE_LENGTH), nullable=False, default="New conversation"
    )
    last_message_preview: Mapped[str] = mapped_column(
        String(MAX_PREVIEW_LENGTH), nullable=False, default="No messages yet"
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConversationStatus.in_progress.value
    )
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    messages: Mapped[list["AgentMessage"]] = relationship(
        "AgentMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="AgentMessage.sequence",
    )
    actions: Mapped[list["AgentAction"]] = relationship(
        "AgentAction",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="AgentAction.sequence",
    )

    def __repr__(self) -> str:
        return f"<AgentConversation(id={self.id!r}, status={self.status!r})>"


class AgentMessage(Base):
    """Append-only conversation message.

    metadata_json carries client rendering payloads (items, cart,
    checkout confirmation, purchase request). It is never parsed back
    by the orchestrator.
    """

    __tablename__ = "agent_messages"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "sequence", name="uq_agentmsg_conversation_seq"
        ),
        Index("ix_agentmsg_conversation_seq", "conversation_id", "sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    conversation_id: Mapped[str] = mapped_column(
        String(24),
        ForeignKey("agent_conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    conversation: Mapped["AgentConversation"] = relationship(
        "AgentConversation", back_populates="messages"
    )

    def __repr__(self) -> str:
        return (
            f"<AgentMessage(id={self.id!r}, sender={self.sender!r}, "
            f"seq={self.sequence})>"
        )


class AgentAction(Base):
    """Audit record of one tool invocation attempt.

    Exactly one of result_json / error is populated.
    """

    __tablename__ = "agent_actions"
    __table_args__ = (
        Index("ix_agentaction_conversation_seq", "conversation_id", "sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(24), primary_key=True, default=generate_object_id
    )
    conversation_id: Mapped[str] = mapped_column(
        String(24),
        ForeignKey("agent_conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    conversation: Mapped[Optional["AgentConversation"]] = relationship(
        "AgentConversation", back_populates="actions"
    )

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        return (
            f"<AgentAction(type={self.action_type!r}, "
            f"ok={self.succeeded})>"
        )
