"""Completion providers for the assistant's free-text fallback.

The orchestrator depends only on the CompletionProvider protocol. The
Anthropic implementation is the production default; OpenAI and Gemini
are reached over their REST APIs with httpx. Every provider reports the
response's token usage to procureflow.services.token_usage.
"""

import logging
import os
from typing import Any, Protocol, runtime_checkable

import httpx
from anthropic import AsyncAnthropic

from procureflow.config import Settings, get_model
from procureflow.services.token_usage import TokenUsage, record_usage

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_GENERATE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
DEFAULT_TIMEOUT_SECONDS = 30.0

# Environment variables holding each provider's credential, in lookup order
PROVIDER_API_KEY_VARS: dict[str, tuple[str, ...]] = {
    "anthropic": ("ANTHROPIC_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


def provider_api_key(provider_name: str) -> str | None:
    """First non-empty credential variable for a provider, else None."""
    for var in PROVIDER_API_KEY_VARS.get(provider_name.lower(), ()):
        value = os.environ.get(var, "").strip()
        if value:
            return value
    return None


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for single-shot text completion."""

    name: str

    async def complete(self, prompt: str, system_message: str) -> str:
        """Return the model's reply to prompt under system_message."""
        ...


class AnthropicCompletionProvider:
    """CompletionProvider backed by the Anthropic Messages API.

    The SDK's own retries are disabled; retry policy lives in
    procureflow.services.resilience.
    """

    name = "anthropic"

    def __init__(
        self,
        model: str,
        max_tokens: int = 1024,
        client: AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Claude model identifier.
            max_tokens: Reply token ceiling.
            client: Optional preconfigured SDK client. Defaults to one
                reading ANTHROPIC_API_KEY.
        """
        self._model = model
        self._max_tokens = max_tokens
        self._client = client or AsyncAnthropic(max_retries=0)

    async def complete(self, prompt: str, system_message: str) -> str:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system_message,
            messages=[{"role": "user", "content": prompt}],
        )
        parts = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        text = "".join(parts).strip()
        usage = getattr(response, "usage", None)
        record_usage(TokenUsage(
            provider=self.name,
            model=self._model,
            input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
        ))
        logger.debug(
            "Completion received: model=%s chars=%d stop_reason=%s",
            self._model, len(text), getattr(response, "stop_reason", None),
        )
        return text


class _HttpCompletionProvider:
    """Shared request plumbing for the REST-backed providers."""

    name = ""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        max_tokens: int = 1024,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Provider model identifier.
            api_key: Credential. Defaults to the provider's environment variable.
            max_tokens: Reply token ceiling.
            timeout: Request timeout in seconds.
            client: Optional shared client; a short-lived one is used
                per call otherwise.
        """
        self._model = model
        self._api_key = api_key if api_key is not None else provider_api_key(self.name)
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client = client

    async def _post(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> dict[str, Any]:
        """POST and decode JSON.

        Raises:
            RuntimeError: If no API key is configured.
            httpx.HTTPStatusError: On non-2xx status; retryable statuses are
                recognized by procureflow.services.resilience.
        """
        if not self._api_key:
            raise RuntimeError(f"No API key configured for {self.name}")
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return response.json()


class OpenAICompletionProvider(_HttpCompletionProvider):
    """CompletionProvider backed by the OpenAI chat completions endpoint."""

    name = "openai"

    async def complete(self, prompt: str, system_message: str) -> str:
        body = await self._post(
            OPENAI_CHAT_URL,
            {
                "model": self._model,
                "max_tokens": self._max_tokens,
                "messages": [
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": prompt},
                ],
            },
            {"Authorization": f"Bearer {self._api_key}"},
        )
        choices = body.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        text = (message.get("content") or "").strip()
        usage = body.get("usage") or {}
        record_usage(TokenUsage(
            provider=self.name,
            model=self._model,
            input_tokens=int(usage.get("prompt_tokens", 0)),
            output_tokens=int(usage.get("completion_tokens", 0)),
        ))
        return text


class GeminiCompletionProvider(_HttpCompletionProvider):
    """CompletionProvider backed by the Gemini generateContent endpoint."""

    name = "gemini"

    async def complete(self, prompt: str, system_message: str) -> str:
        body = await self._post(
            GEMINI_GENERATE_URL.format(model=self._model),
            {
                "systemInstruction": {"parts": [{"text": system_message}]},
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"maxOutputTokens": self._max_tokens},
            },
            {"x-goog-api-key": self._api_key or ""},
        )
        candidates = body.get("candidates") or []
        parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
        text = "".join(part.get("text", "") for part in parts).strip()
        usage = body.get("usageMetadata") or {}
        record_usage(TokenUsage(
            provider=self.name,
            model=self._model,
            input_tokens=int(usage.get("promptTokenCount", 0)),
            output_tokens=int(usage.get("candidatesTokenCount", 0)),
        ))
        return text


def create_completion_provider(settings: Settings) -> CompletionProvider:
    """Build the configured completion provider.

    Args:
        settings: Loaded settings; llm.provider selects the backend.

    Returns:
        A CompletionProvider instance.

    Raises:
        ValueError: If the provider name is not supported.
    """
    provider = settings.llm.provider.lower()
    model = settings.llm.model or get_model(provider)
    if provider == "anthropic":
        return AnthropicCompletionProvider(model=model, max_tokens=settings.llm.max_tokens)
    if provider == "openai":
        return OpenAICompletionProvider(model=model, max_tokens=settings.llm.max_tokens)
    if provider == "gemini":
        return GeminiCompletionProvider(model=model, max_tokens=settings.llm.max_tokens)
    raise ValueError(f"Unsupported LLM provider: {settings.llm.provider}")
