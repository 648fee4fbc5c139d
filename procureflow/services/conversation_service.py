"""Persistence service for agent conversations, messages, and actions.

Thin layer between the turn handler / API routes and the SQLAlchemy
models. Messages are append-only and each turn adds exactly two (user,
then agent). Every tool attempt is written to the action log whether or
not it succeeded. Mutating methods commit, matching the rest of the
request flow where the conversation must survive a failed tool call.
"""

import json
import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from procureflow.db.models import (
    MAX_CONVERSATION_MESSAGES,
    MAX_MESSAGE_LENGTH,
    MAX_PREVIEW_LENGTH,
    MAX_SUMMARY_LENGTH,
    MAX_TITLE_LENGTH,
    AgentAction,
    AgentConversation,
    AgentMessage,
    ConversationStatus,
    MessageSender,
    utc_now_iso,
)
from procureflow.errors import (
    ConversationClosedError,
    ConversationLimitError,
    ConversationNotFoundError,
    ValidationError,
)
from procureflow.utils.redaction import redact_for_logging, sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New conversation"
UNTITLED = "Untitled conversation"
NO_MESSAGES = "No messages yet"
DEFAULT_LIST_LIMIT = 10


def _clip(text: str | None, limit: int) -> str:
    return " ".join((text or "").split())[:limit]


def _loads(raw: str | None, what: str, owner_id: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupted %s for %s", what, owner_id)
        return None


def conversation_to_summary(conversation: AgentConversation) -> dict[str, Any]:
    """Sidebar summary of a conversation."""
    return {
        "id": conversation.id,
        "title": conversation.title or UNTITLED,
        "last_message_preview": conversation.last_message_preview or NO_MESSAGES,
        "status": conversation.status,
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
    }


def message_to_dict(message: AgentMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.sender,
        "content": message.content,
        "metadata": _loads(message.metadata_json, "metadata_json", message.id),
        "sequence": message.sequence,
        "timestamp": message.created_at,
    }


class ConversationService:
    """CRUD and state transitions for agent conversations.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    # Lookup

    def create_conversation(
        self,
        user_id: str | None = None,
        title: str | None = None,
        last_message_preview: str | None = None,
    ) -> AgentConversation:
        """Create an empty in-progress conversation.

        Args:
            user_id: Owner, or None for an anonymous conversation.
            title: Title, trimmed to 120 chars.
            last_message_preview: Preview, trimmed to 120 chars.

        Returns:
            The committed AgentConversation.
        """
        conversation = AgentConversation(
            user_id=user_id,
            title=_clip(title, MAX_TITLE_LENGTH) or DEFAULT_TITLE,
            last_message_preview=_clip(last_message_preview, MAX_PREVIEW_LENGTH) or NO_MESSAGES,
            status=ConversationStatus.in_progress.value,
        )
        self._db.add(conversation)
        self._db.commit()
        logger.info("Created conversation %s for user %s", conversation.id, user_id)
        return conversation

    def get_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> AgentConversation:
        """Fetch a conversation visible to user_id.

        Owned conversations are visible only to their owner; anonymous
        conversations are visible to everyone.

        Raises:
            ConversationNotFoundError: If missing or owned by someone else.
        """
        conversation = self._db.get(AgentConversation, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        if conversation.user_id is not None and conversation.user_id != user_id:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def count_messages(self, conversation_id: str) -> int:
        return (
            self._db.query(func.count(AgentMessage.id))
            .filter(AgentMessage.conversation_id == conversation_id)
            .scalar()
        ) or 0

    def _next_sequence(self, table: type, conversation_id: str) -> int:
        max_seq = (
            self._db.query(func.max(table.sequence))
            .filter(table.conversation_id == conversation_id)
            .scalar()
        )
        return (max_seq or 0) + 1

    # Messages

    @staticmethod
    def ensure_open(conversation: AgentConversation) -> None:
        """Raise ConversationClosedError unless the conversation is in progress."""
        if conversation.status != ConversationStatus.in_progress.value:
            raise ConversationClosedError(conversation.id, conversation.status)

    def ensure_can_append(self, conversation: AgentConversation, count: int = 2) -> None:
        """Check a turn can be stored before any work is done for it.

        Raises:
            ConversationClosedError: If the conversation is terminal.
            ConversationLimitError: If count more messages would exceed 500.
        """
        self.ensure_open(conversation)
        if self.count_messages(conversation.id) + count > MAX_CONVERSATION_MESSAGES:
            raise ConversationLimitError(MAX_CONVERSATION_MESSAGES)

    @staticmethod
    def _clean_content(content: str, truncate: bool) -> str:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            if not truncate:
                raise ValidationError(
                    f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters"
                )
            text = text[:MAX_MESSAGE_LENGTH]
        return text

    def _add_message(
        self,
        conversation: AgentConversation,
        sender: MessageSender,
        content: str,
        metadata: dict[str, Any] | None,
        sequence: int,
    ) -> AgentMessage:
        message = AgentMessage(
            conversation_id=conversation.id,
            sender=sender.value,
            content=content,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
            sequence=sequence,
        )
        self._db.add(message)
        return message

    def append_message(
        self,
        conversation: AgentConversation,
        sender: MessageSender,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> AgentMessage:
        """Append a single message (system notes, imports).

        Raises:
            ConversationClosedError: If the conversation is terminal.
            ConversationLimitError: If it already holds 500 messages.
            ValidationError: On empty or over-long content.
        """
        self.ensure_open(conversation)
        text = self._clean_content(content, truncate=sender is not MessageSender.user)
        if self.count_messages(conversation.id) + 1 > MAX_CONVERSATION_MESSAGES:
            raise ConversationLimitError(MAX_CONVERSATION_MESSAGES)

        message = self._add_message(
            conversation, sender, text, metadata,
            self._next_sequence(AgentMessage, conversation.id),
        )
        conversation.last_message_preview = _clip(text, MAX_PREVIEW_LENGTH)
        conversation.updated_at = utc_now_iso()
        self._db.commit()
        return message

    def append_turn(
        self,
        conversation: AgentConversation,
        user_text: str,
        agent_text: str,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[AgentMessage, AgentMessage]:
        """Append one user message and one agent reply.

        The first turn on a conversation with the default title names it
        after the user's message. The preview follows the agent reply.

        Args:
            conversation: Target conversation (must be in progress).
            user_text: The user's message (<= 10,000 chars after trim).
            agent_text: The reply; truncated to 10,000 chars.
            metadata: Optional client rendering payload for the reply.

        Returns:
            (user_message, agent_message)

        Raises:
            ConversationClosedError: If the conversation is terminal.
            ConversationLimitError: If the two messages would exceed 500.
            ValidationError: On empty or over-long user text.
        """
        self.ensure_open(conversation)
        user_clean = self._clean_content(user_text, truncate=False)
        agent_clean = self._clean_content(agent_text, truncate=True)

        existing = self.count_messages(conversation.id)
        if existing + 2 > MAX_CONVERSATION_MESSAGES:
            raise ConversationLimitError(MAX_CONVERSATION_MESSAGES)

        sequence = self._next_sequence(AgentMessage, conversation.id)
        user_msg = self._add_message(conversation, MessageSender.user, user_clean, None, sequence)
        agent_msg = self._add_message(
            conversation, MessageSender.agent, agent_clean, metadata, sequence + 1
        )

        if existing == 0 and conversation.title in (DEFAULT_TITLE, "", None):
            conversation.title = _clip(user_clean, MAX_TITLE_LENGTH)
        conversation.last_message_preview = _clip(agent_clean, MAX_PREVIEW_LENGTH)
        conversation.updated_at = utc_now_iso()
        self._db.commit()
        return user_msg, agent_msg

    def recent_messages(self, conversation_id: str, limit: int = 10) -> list[AgentMessage]:
        """The last `limit` messages in chronological order."""
        rows = (
            self._db.query(AgentMessage)
            .filter(AgentMessage.conversation_id == conversation_id)
            .order_by(AgentMessage.sequence.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))

    # Actions

    def record_action(
        self,
        conversation: AgentConversation,
        action_type: str,
        parameters: dict[str, Any] | None,
        result: Any = None,
        error: str | None = None,
        error_code: str | None = None,
        latency_ms: int | None = None,
    ) -> AgentAction:
        """Append one tool attempt to the audit log.

        Parameters are stored as received with sensitive keys redacted.
        Exactly one of result / error is stored; error wins when both
        are passed.
        """
        params = parameters if isinstance(parameters, dict) else {"value": parameters}
        action = AgentAction(
            conversation_id=conversation.id,
            sequence=self._next_sequence(AgentAction, conversation.id),
            action_type=action_type,
            parameters_json=json.dumps(redact_for_logging(params), default=str),
            result_json=None if error else json.dumps(result, default=str),
            error=sanitize_error_message(error) if error else None,
            error_code=error_code if error else None,
            latency_ms=latency_ms,
        )
        self._db.add(action)
        self._db.commit()
        logger.info(
            "Recorded action %s on conversation %s (ok=%s)",
            action_type, conversation.id, error is None,
        )
        return action

    def list_actions(self, conversation_id: str) -> list[AgentAction]:
        return (
            self._db.query(AgentAction)
            .filter(AgentAction.conversation_id == conversation_id)
            .order_by(AgentAction.sequence)
            .all()
        )

    # Router context

    def get_context(self, conversation: AgentConversation) -> dict[str, Any]:
        return _loads(conversation.context_data, "context_data", conversation.id) or {}

    def update_context(self, conversation: AgentConversation, **values: Any) -> None:
        """Merge values into the conversation context; None deletes a key.

        Not committed here; the next append or action write persists it.
        """
        context = self.get_context(conversation)
        for key, value in values.items():
            if value is None:
                context.pop(key, None)
            else:
                context[key] = value
        conversation.context_data = json.dumps(context) if context else None

    # State machine

    def _transition(
        self, conversation: AgentConversation, target: ConversationStatus
    ) -> AgentConversation:
        self.ensure_open(conversation)
        conversation.status = target.value
        conversation.updated_at = utc_now_iso()
        self._db.commit()
        logger.info("Conversation %s -> %s", conversation.id, target.value)
        return conversation

    def complete_conversation(
        self, conversation_id: str, user_id: str | None = None, summary: str | None = None
    ) -> AgentConversation:
        """Close a conversation normally.

        Raises:
            ConversationNotFoundError: If not visible to user_id.
            ConversationClosedError: If already terminal.
        """
        conversation = self.get_conversation(conversation_id, user_id)
        if summary:
            conversation.summary = summary.strip()[:MAX_SUMMARY_LENGTH]
        return self._transition(conversation, ConversationStatus.completed)

    def abort_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> AgentConversation:
        """Mark a conversation aborted after an unrecoverable error.

        Raises:
            ConversationNotFoundError: If not visible to user_id.
            ConversationClosedError: If already terminal.
        """
        conversation = self.get_conversation(conversation_id, user_id)
        return self._transition(conversation, ConversationStatus.aborted)

    # Summaries for the UI

    def list_conversations_for_user(
        self, user_id: str, limit: int = DEFAULT_LIST_LIMIT
    ) -> list[dict[str, Any]]:
        """Most recently updated conversations for a user."""
        rows = (
            self._db.query(AgentConversation)
            .filter(AgentConversation.user_id == user_id)
            .order_by(AgentConversation.updated_at.desc())
            .limit(limit)
            .all()
        )
        return [conversation_to_summary(c) for c in rows]

    def get_conversation_summary(self, user_id: str, conversation_id: str) -> dict[str, Any]:
        """Summary of one of the user's conversations.

        Raises:
            ConversationNotFoundError: If not visible to user_id.
        """
        return conversation_to_summary(self.get_conversation(conversation_id, user_id))

    def touch_conversation(
        self, user_id: str, conversation_id: str, last_message_preview: str
    ) -> dict[str, Any]:
        """Update the preview and bump updated_at.

        Raises:
            ConversationNotFoundError: If not visible to user_id.
        """
        conversation = self.get_conversation(conversation_id, user_id)
        conversation.last_message_preview = (
            _clip(last_message_preview, MAX_PREVIEW_LENGTH) or NO_MESSAGES
        )
        conversation.updated_at = utc_now_iso()
        self._db.commit()
        return conversation_to_summary(conversation)

    def get_conversation_with_messages(
        self, user_id: str | None, conversation_id: str
    ) -> dict[str, Any]:
        """Full transcript for display or resume.

        Raises:
            ConversationNotFoundError: If not visible to user_id.
        """
        conversation = self.get_conversation(conversation_id, user_id)
        return {
            "conversation_id": conversation.id,
            "title": conversation.title or UNTITLED,
            "status": conversation.status,
            "messages": [message_to_dict(m) for m in conversation.messages],
        }
