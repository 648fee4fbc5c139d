"""Shared agent turn handling.

`handle_agent_message` is the one code path for a chat turn, used by the
HTTP route and the CLI REPL alike:

    text -> input safety gate -> moderation gate -> intent router
         -> tool argument validation -> tool -> reply -> conversation store

Safety and moderation run before the conversation is touched, so a
rejected message writes nothing. Every tool attempt is recorded in the
action log. Tool failures become safe replies; anything unexpected
outside a tool marks the conversation aborted and propagates.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from procureflow.config import Settings
from procureflow.db.models import MAX_MESSAGE_LENGTH, AgentConversation
from procureflow.errors import DomainError, ValidationError, classify_error
from procureflow.orchestrator.agent.intent_detection import resolve_intent
from procureflow.orchestrator.agent.responses import (
    FALLBACK_CHAT_REPLY,
    AgentReply,
    checkout_confirmation_reply,
    synthesize_error_reply,
    synthesize_reply,
)
from procureflow.orchestrator.agent.system_prompt import build_chat_prompt, build_system_prompt
from procureflow.orchestrator.agent.tools import ToolContext, execute_tool, prepare_checkout
from procureflow.orchestrator.models.intent import (
    AddToCartIntent,
    AnalyzeCartIntent,
    ChatIntent,
    CheckoutIntent,
    ClarifyIntent,
    Intent,
    ItemDetailsIntent,
    RegisterItemIntent,
    RemoveFromCartIntent,
    SearchIntent,
    UpdateCartQuantityIntent,
    ViewCartIntent,
)
from procureflow.orchestrator.models.tool_args import ToolArgumentError, validate_tool_args
from procureflow.services.cart_service import CartService, cart_to_dict
from procureflow.services.conversation_service import ConversationService, message_to_dict
from procureflow.services.llm_client import (
    CompletionProvider,
    create_completion_provider,
    provider_api_key,
)
from procureflow.services.metrics import (
    agent_turn_duration_seconds,
    tool_executions_total,
    validation_errors_total,
)
from procureflow.services.moderation import ModerationGate, OpenAIModerationProvider
from procureflow.services.prompt_injection import validate_user_input
from procureflow.services.rate_limiter import ProviderRateLimiter
from procureflow.services.resilience import with_retry
from procureflow.services.search_cache import InMemorySearchCache, NullSearchCache, SearchCache

logger = logging.getLogger(__name__)

PENDING_CHECKOUT_KEY = "pending_checkout"

OFFLINE_CHAT_REPLY = (
    "I can help you search the catalog, manage your cart, and submit purchase "
    "requests. Try 'find laptops under $1500', 'show my cart', or 'checkout'."
)


@dataclass
class OrchestratorDependencies:
    """Collaborators injected into every turn.

    Attributes:
        completion_provider: Chat fallback model. None answers chat
            messages with a static help text.
        moderation_gate: Content moderation gate (disabled by default).
        search_cache: Catalog search cache shared across turns.
        settings: Loaded settings.
        rate_limiter: Per-provider request throttle. None sends
            completion calls unthrottled.
    """

    completion_provider: CompletionProvider | None = None
    moderation_gate: ModerationGate = field(
        default_factory=lambda: ModerationGate(None, enabled=False)
    )
    search_cache: SearchCache = field(default_factory=NullSearchCache)
    settings: Settings = field(default_factory=Settings)
    rate_limiter: ProviderRateLimiter | None = None


def build_dependencies(settings: Settings) -> OrchestratorDependencies:
    """Wire production collaborators from settings.

    The completion provider is only created when an API key is present,
    so local runs without credentials still answer chat messages.
    """
    provider: CompletionProvider | None = None
    if provider_api_key(settings.llm.provider):
        provider = create_completion_provider(settings)
    else:
        logger.warning(
            "No API key for %s, chat fallback uses static help text", settings.llm.provider
        )

    moderation_provider = (
        OpenAIModerationProvider(model=settings.safety.moderation_model)
        if settings.safety.moderation_enabled
        else None
    )
    return OrchestratorDependencies(
        completion_provider=provider,
        moderation_gate=ModerationGate(
            moderation_provider, enabled=settings.safety.moderation_enabled
        ),
        search_cache=InMemorySearchCache(
            max_size=settings.search_cache.max_size,
            ttl_seconds=settings.search_cache.ttl_seconds,
        ),
        settings=settings,
        rate_limiter=ProviderRateLimiter(),
    )


@dataclass
class AgentResponse:
    """Result of one turn.

    Attributes:
        conversation_id: Conversation the turn was stored in.
        title: Conversation title.
        messages: The two messages appended this turn (user, agent).
    """

    conversation_id: str
    title: str
    messages: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "title": self.title,
            "messages": self.messages,
        }


class _Turn:
    """State for one turn once the conversation exists."""

    def __init__(
        self,
        db: Session,
        store: ConversationService,
        conversation: AgentConversation,
        user_id: str | None,
        dependencies: OrchestratorDependencies,
    ) -> None:
        self.db = db
        self.store = store
        self.conversation = conversation
        self.user_id = user_id
        self.deps = dependencies
        self.ctx = ToolContext(db=db, user_id=user_id, search_cache=dependencies.search_cache)
        self.context_updates: dict[str, Any] = {}

    def _run_tool(self, name: str, args: dict[str, Any]) -> AgentReply:
        """Validate, execute, and record one tool call."""
        started = time.perf_counter()
        try:
            result = execute_tool(name, args, self.ctx)
        except Exception as e:
            latency_ms = int((time.perf_counter() - started) * 1000)
            self.db.rollback()
            if isinstance(e, ToolArgumentError):
                status = "invalid"
                validation_errors_total.labels(type="tool_args").inc()
            else:
                status = "error"
            tool_executions_total.labels(tool=name, status=status).inc()

            if isinstance(e, DomainError):
                logger.info("Tool %s rejected: %s", name, type(e).__name__)
            else:
                logger.exception("Tool %s failed unexpectedly", name)
            self.store.record_action(
                self.conversation,
                name,
                args,
                error=str(e) or type(e).__name__,
                error_code=classify_error(e).code,
                latency_ms=latency_ms,
            )
            return synthesize_error_reply(name, e)

        latency_ms = int((time.perf_counter() - started) * 1000)
        tool_executions_total.labels(tool=name, status="success").inc()
        self.store.record_action(
            self.conversation, name, args, result=result, latency_ms=latency_ms
        )
        return synthesize_reply(name, result)

    def _prepare_checkout(self, intent: CheckoutIntent) -> AgentReply:
        try:
            args = validate_tool_args("checkout", {"notes": intent.notes})
            prepared = prepare_checkout(args, self.ctx)
        except DomainError as e:
            self.context_updates[PENDING_CHECKOUT_KEY] = None
            return synthesize_error_reply("checkout", e)
        self.context_updates[PENDING_CHECKOUT_KEY] = {"notes": intent.notes}
        return checkout_confirmation_reply(prepared)

    def _confirmed_checkout(self, intent: CheckoutIntent) -> AgentReply:
        pending = self.store.get_context(self.conversation).get(PENDING_CHECKOUT_KEY) or {}
        notes = intent.notes or pending.get("notes")
        self.context_updates[PENDING_CHECKOUT_KEY] = None
        return self._run_tool("checkout", {"notes": notes} if notes else {})

    async def _chat(self, text: str) -> AgentReply:
        """Free-text completion fallback. Never mutates state."""
        provider = self.deps.completion_provider
        if provider is None:
            return AgentReply(OFFLINE_CHAT_REPLY)

        history = [
            (m.sender, m.content)
            for m in self.store.recent_messages(self.conversation.id)
        ]
        cart = CartService(self.db).find_cart(self.user_id) if self.user_id else None
        system_message = build_system_prompt(cart=cart_to_dict(cart) if cart else None)
        prompt = build_chat_prompt(history, text)

        limiter = self.deps.rate_limiter

        async def _attempt() -> str:
            if limiter is None:
                return await provider.complete(prompt, system_message)
            return await limiter.run(
                provider.name, lambda: provider.complete(prompt, system_message)
            )

        completion = await with_retry(provider.name, _attempt)
        return AgentReply(completion.strip() or FALLBACK_CHAT_REPLY)

    async def dispatch(self, intent: Intent, text: str) -> AgentReply:
        """Route an intent to its handler. Every kind must be handled here."""
        if not isinstance(intent, CheckoutIntent):
            self.context_updates[PENDING_CHECKOUT_KEY] = None

        match intent:
            case SearchIntent(query=query, max_price=max_price):
                args: dict[str, Any] = {"query": query}
                if max_price is not None:
                    args["max_price"] = max_price
                return self._run_tool("search_catalog", args)
            case ItemDetailsIntent(item_id=item_id):
                return self._run_tool("get_item_details", {"item_id": item_id})
            case AddToCartIntent(item_id=item_id, quantity=quantity):
                return self._run_tool("add_to_cart", {"item_id": item_id, "quantity": quantity})
            case UpdateCartQuantityIntent(item_id=item_id, quantity=quantity):
                return self._run_tool(
                    "update_cart_quantity", {"item_id": item_id, "quantity": quantity}
                )
            case RemoveFromCartIntent(item_id=item_id):
                return self._run_tool("remove_from_cart", {"item_id": item_id})
            case ViewCartIntent():
                return self._run_tool("view_cart", {})
            case AnalyzeCartIntent():
                return self._run_tool("analyze_cart", {})
            case CheckoutIntent(confirmed=True):
                return self._confirmed_checkout(intent)
            case CheckoutIntent():
                return self._prepare_checkout(intent)
            case RegisterItemIntent():
                return self._run_tool(
                    "register_item",
                    intent.model_dump(include={
                        "name", "category", "description", "price", "confirm_duplicate",
                    }),
                )
            case ClarifyIntent(tool=tool, question=question):
                return AgentReply(question, {"clarify": {"tool": tool}})
            case ChatIntent():
                return await self._chat(text)
            case _:
                raise ValueError(f"Unhandled intent kind: {getattr(intent, 'kind', intent)!r}")

    def finish(self, text: str, reply: AgentReply) -> AgentResponse:
        if self.context_updates:
            self.store.update_context(self.conversation, **self.context_updates)
        user_msg, agent_msg = self.store.append_turn(
            self.conversation, text, reply.text, reply.metadata
        )
        return AgentResponse(
            conversation_id=self.conversation.id,
            title=self.conversation.title,
            messages=[message_to_dict(user_msg), message_to_dict(agent_msg)],
        )


def _abort_after_failure(
    db: Session, store: ConversationService, conversation_id: str, user_id: str | None
) -> None:
    db.rollback()
    try:
        store.abort_conversation(conversation_id, user_id)
    except DomainError as e:
        logger.warning(
            "Could not mark conversation %s aborted: %s", conversation_id, type(e).__name__
        )


async def handle_agent_message(
    db: Session,
    user_id: str | None,
    message: str | None,
    conversation_id: str | None = None,
    *,
    dependencies: OrchestratorDependencies,
) -> AgentResponse:
    """Handle one chat turn end to end.

    Args:
        db: Request-scoped session.
        user_id: Authenticated user, or None for an anonymous conversation.
        message: Raw user text. None counts as empty.
        conversation_id: Existing conversation to continue; a new one is
            created when omitted.
        dependencies: Injected collaborators.

    Returns:
        AgentResponse with the conversation id, title, and the two
        messages appended this turn.

    Raises:
        ValidationError: Empty or over-long message.
        PromptInjectionError: Unsafe input; nothing is written.
        ContentFlaggedError: Moderation rejected the text; nothing is written.
        ConversationNotFoundError: Unknown or foreign conversation_id.
        ConversationClosedError: The conversation is completed or aborted.
        ConversationLimitError: The conversation is full.
        Exception: Completion-provider errors, unchanged, after retries.
    """
    with agent_turn_duration_seconds.time():
        text = (message or "").strip()
        if not text:
            validation_errors_total.labels(type="empty_message").inc()
            raise ValidationError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            validation_errors_total.labels(type="message_too_long").inc()
            raise ValidationError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")

        settings = dependencies.settings
        sanitized = validate_user_input(text, strict=settings.safety.prompt_injection_strict)
        await dependencies.moderation_gate.validate(sanitized)

        store = ConversationService(db)
        if conversation_id:
            conversation = store.get_conversation(conversation_id, user_id)
            store.ensure_can_append(conversation)
        else:
            conversation = store.create_conversation(user_id, title=sanitized)

        active_id = conversation.id
        turn = _Turn(db, store, conversation, user_id, dependencies)
        try:
            pending = store.get_context(conversation).get(PENDING_CHECKOUT_KEY)
            intent = resolve_intent(sanitized, has_pending_checkout=pending is not None)
            logger.info(
                "Agent turn: conversation=%s intent=%s", active_id, intent.kind
            )
            reply = await turn.dispatch(intent, sanitized)
            return turn.finish(sanitized, reply)
        except DomainError:
            raise
        except Exception:
            logger.exception("Agent turn failed for conversation %s", active_id)
            _abort_after_failure(db, store, active_id, user_id)
            raise
