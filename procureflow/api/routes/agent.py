"""Agent chat and conversation API routes.

Provides endpoints for:
- Sending a chat turn to the procurement agent
- Listing, creating, touching and closing conversations
- Reading a conversation transcript
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procureflow.api.dependencies import (
    get_orchestrator_dependencies,
    get_user_id,
    require_user_id,
)
from procureflow.api.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    ConversationSummaryResponse,
    ConversationTranscriptResponse,
    CreateConversationRequest,
    TouchConversationRequest,
)
from procureflow.db.connection import get_db
from procureflow.services.conversation_handler import (
    OrchestratorDependencies,
    handle_agent_message,
)
from procureflow.services.conversation_service import (
    ConversationService,
    conversation_to_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agent", tags=["agent"])


def get_conversation_service(db: Session = Depends(get_db)) -> ConversationService:
    """Dependency to get ConversationService instance.

    Args:
        db: Database session from dependency injection.

    Returns:
        ConversationService instance.
    """
    return ConversationService(db)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_user_id),
    dependencies: OrchestratorDependencies = Depends(get_orchestrator_dependencies),
) -> ChatResponse:
    """Run one agent turn.

    Omitting conversation_id starts a new conversation. Domain errors
    (empty message, unsafe input, closed conversation...) are turned
    into error payloads by the app-level exception handlers.

    Args:
        payload: Message text and optional conversation id.
        db: Database session.
        user_id: Caller from the X-User-Id header, or None.
        dependencies: Shared orchestrator collaborators.

    Returns:
        The conversation id, title, and the two new messages.
    """
    response = await handle_agent_message(
        db,
        user_id,
        payload.message,
        payload.conversation_id,
        dependencies=dependencies,
    )
    return ChatResponse(**response.to_dict())


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    limit: int = Query(10, ge=1, le=100, description="Max conversations to return"),
    user_id: str = Depends(require_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    """List the caller's conversations, most recently updated first."""
    rows = service.list_conversations_for_user(user_id, limit=limit)
    return ConversationListResponse(
        conversations=[ConversationSummaryResponse(**row) for row in rows]
    )


@router.post("/conversations", response_model=ConversationSummaryResponse, status_code=201)
def create_conversation(
    payload: CreateConversationRequest,
    user_id: str | None = Depends(get_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSummaryResponse:
    """Create an empty conversation."""
    conversation = service.create_conversation(
        user_id,
        title=payload.title,
        last_message_preview=payload.last_message_preview,
    )
    return ConversationSummaryResponse(**conversation_to_summary(conversation))


@router.get("/conversations/{conversation_id}", response_model=ConversationSummaryResponse)
def get_conversation(
    conversation_id: str,
    user_id: str | None = Depends(get_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSummaryResponse:
    """Get a conversation summary."""
    conversation = service.get_conversation(conversation_id, user_id)
    return ConversationSummaryResponse(**conversation_to_summary(conversation))


@router.patch("/conversations/{conversation_id}", response_model=ConversationSummaryResponse)
def touch_conversation(
    conversation_id: str,
    payload: TouchConversationRequest,
    user_id: str = Depends(require_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSummaryResponse:
    """Update a conversation's preview text and bump its updated_at."""
    summary = service.touch_conversation(
        user_id, conversation_id, payload.last_message_preview
    )
    return ConversationSummaryResponse(**summary)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=ConversationTranscriptResponse,
)
def get_conversation_messages(
    conversation_id: str,
    user_id: str | None = Depends(get_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationTranscriptResponse:
    """Get the full transcript of a conversation."""
    return ConversationTranscriptResponse(
        **service.get_conversation_with_messages(user_id, conversation_id)
    )


@router.post(
    "/conversations/{conversation_id}/complete",
    response_model=ConversationSummaryResponse,
)
def complete_conversation(
    conversation_id: str,
    user_id: str | None = Depends(get_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSummaryResponse:
    """Close a conversation. Later turns against it are rejected."""
    conversation = service.complete_conversation(conversation_id, user_id)
    logger.info("Conversation %s completed by %s", conversation_id, user_id)
    return ConversationSummaryResponse(**conversation_to_summary(conversation))
