"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the ProcureFlow REST API:
agent chat turns, conversation summaries, and purchase requests.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# Agent chat schemas


class ChatRequest(BaseModel):
    """Request schema for one agent turn.

    Emptiness and length are checked by the turn handler so the REST,
    CLI and REPL callers all get the same VALIDATION_ERROR.
    """

    message: str | None = None
    conversation_id: str | None = Field(default=None, max_length=64)


class ChatMessageResponse(BaseModel):
    """One stored message."""

    id: str
    role: str
    content: str
    metadata: dict[str, Any] | None = None
    sequence: int
    timestamp: str


class ChatResponse(BaseModel):
    """Response schema for an agent turn."""

    conversation_id: str
    title: str
    messages: list[ChatMessageResponse]


# Conversation schemas


class ConversationSummaryResponse(BaseModel):
    """Sidebar summary of a conversation."""

    id: str
    title: str
    last_message_preview: str
    status: str
    created_at: str
    updated_at: str


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummaryResponse]


class CreateConversationRequest(BaseModel):
    """Request schema for creating an empty conversation."""

    title: str | None = Field(None, max_length=500)
    last_message_preview: str | None = Field(None, max_length=500)


class TouchConversationRequest(BaseModel):
    """Request schema for updating a conversation's preview."""

    last_message_preview: str = Field(..., max_length=500)


class ConversationTranscriptResponse(BaseModel):
    """Full transcript of one conversation."""

    conversation_id: str
    title: str
    status: str
    messages: list[ChatMessageResponse]


# Purchase request schemas


class PurchaseRequestItemResponse(BaseModel):
    """Immutable line snapshot."""

    item_id: str
    name: str
    category: str
    description: str
    unit_price: float
    quantity: int
    subtotal: float


class PurchaseRequestResponse(BaseModel):
    """Response schema for a purchase request."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    request_number: str
    status: str
    total: float
    notes: str | None = None
    source: str
    payment_method: str | None = None
    shipping_address: dict[str, Any] | None = None
    created_at: str
    items: list[PurchaseRequestItemResponse]


class PurchaseRequestListResponse(BaseModel):
    purchase_requests: list[PurchaseRequestResponse]
    total: int
