"""Content moderation gate.

Wraps an external content-safety classifier. The gate fails open: any
provider or transport error is logged and treated as "not flagged" so
a moderation outage never blocks the assistant. When disabled, the
gate never calls the provider.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from procureflow.errors import ContentFlaggedError
from procureflow.services.metrics import moderation_rejections_total

logger = logging.getLogger(__name__)

OPENAI_MODERATION_URL = "https://api.openai.com/v1/moderations"

MODERATION_CATEGORIES = (
    "hate",
    "hate/threatening",
    "harassment",
    "harassment/threatening",
    "self-harm",
    "self-harm/intent",
    "self-harm/instructions",
    "sexual",
    "sexual/minors",
    "violence",
    "violence/graphic",
)


@dataclass(frozen=True)
class ModerationResult:
    """Classifier verdict.

    Attributes:
        flagged: True when the classifier flagged the text.
        categories: Flagged category names, in MODERATION_CATEGORIES order.
    """

    flagged: bool
    categories: list[str] = field(default_factory=list)


@runtime_checkable
class ModerationProvider(Protocol):
    """Protocol for content classifiers."""

    async def classify(self, text: str) -> ModerationResult:
        """Classify text. May raise on transport or API errors."""
        ...


class OpenAIModerationProvider:
    """Classifier backed by the OpenAI moderations endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "omni-moderation-latest",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: OpenAI key. Defaults to OPENAI_API_KEY.
            model: Moderation model name.
            timeout: Request timeout in seconds.
            client: Optional shared client; a short-lived one is used
                per call otherwise.
        """
        self._api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY", "")
        self._model = model
        self._timeout = timeout
        self._client = client

    async def classify(self, text: str) -> ModerationResult:
        """Call the moderation endpoint.

        Raises:
            RuntimeError: If no API key is configured.
            httpx.HTTPError: On transport failure or non-2xx status.
        """
        if not self._api_key:
            raise RuntimeError("OPENAI_API_KEY not configured for moderation")

        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {"input": text, "model": self._model}
        if self._client is not None:
            response = await self._client.post(
                OPENAI_MODERATION_URL, json=payload, headers=headers
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    OPENAI_MODERATION_URL, json=payload, headers=headers
                )
        response.raise_for_status()

        result = response.json()["results"][0]
        flags = result.get("categories", {})
        categories = [c for c in MODERATION_CATEGORIES if flags.get(c)]
        return ModerationResult(flagged=bool(result.get("flagged")), categories=categories)


class ModerationGate:
    """Pass/reject decision around a ModerationProvider."""

    def __init__(self, provider: ModerationProvider | None, enabled: bool) -> None:
        """Initialize the gate.

        Args:
            provider: Classifier to call. May be None when disabled.
            enabled: When False, check() returns unflagged immediately.
        """
        self._provider = provider
        self._enabled = enabled and provider is not None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def check(self, text: str) -> ModerationResult:
        """Classify text, failing open on any provider error.

        Args:
            text: Sanitized user text.

        Returns:
            The provider's verdict, or an unflagged result when disabled
            or when the provider raised.
        """
        if not self._enabled:
            return ModerationResult(flagged=False)

        try:
            result = await self._provider.classify(text)
        except Exception as e:
            logger.error(
                "Moderation call failed, allowing message through: %s",
                type(e).__name__,
            )
            return ModerationResult(flagged=False)

        if result.flagged:
            first = result.categories[0] if result.categories else "unknown"
            moderation_rejections_total.labels(category=first).inc()
            logger.warning(
                "Content moderation flagged message: categories=%s input_length=%d",
                result.categories,
                len(text),
            )
        return result

    async def validate(self, text: str) -> str:
        """Raise if text is flagged; otherwise return it unchanged.

        Raises:
            ContentFlaggedError: With the flagged category list.
        """
        result = await self.check(text)
        if result.flagged:
            raise ContentFlaggedError(list(result.categories))
        return text
