"""Tests for the moderation gate and the OpenAI moderation provider."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from procureflow.errors import ContentFlaggedError
from procureflow.services.moderation import (
    ModerationGate,
    ModerationProvider,
    OpenAIModerationProvider,
)
from tests.helpers import FakeModerationProvider, sample_value


class TestModerationGate:
    @pytest.mark.asyncio
    async def test_disabled_never_calls_provider(self):
        provider = FakeModerationProvider(flagged=True, categories=["violence"])
        gate = ModerationGate(provider, enabled=False)

        assert await gate.validate("anything") == "anything"
        assert provider.calls == []
        assert not gate.enabled

    @pytest.mark.asyncio
    async def test_enabled_without_provider_is_disabled(self):
        gate = ModerationGate(None, enabled=True)
        result = await gate.check("hello")
        assert not result.flagged
        assert not gate.enabled

    @pytest.mark.asyncio
    async def test_clean_text_passes(self):
        provider = FakeModerationProvider()
        gate = ModerationGate(provider, enabled=True)
        assert await gate.validate("find chairs") == "find chairs"
        assert provider.calls == ["find chairs"]

    @pytest.mark.asyncio
    async def test_flagged_raises_with_categories(self):
        provider = FakeModerationProvider(flagged=True, categories=["harassment", "violence"])
        gate = ModerationGate(provider, enabled=True)
        labels = {"category": "harassment"}
        before = sample_value("moderation_rejections_total", labels)

        with pytest.raises(ContentFlaggedError) as exc_info:
            await gate.validate("bad text")

        assert exc_info.value.categories == ["harassment", "violence"]
        assert sample_value("moderation_rejections_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_provider_error_fails_open(self):
        provider = FakeModerationProvider(error=httpx.ConnectError("down"))
        gate = ModerationGate(provider, enabled=True)
        assert await gate.validate("find chairs") == "find chairs"
        assert provider.calls == ["find chairs"]

    def test_fake_satisfies_protocol(self):
        assert isinstance(FakeModerationProvider(), ModerationProvider)


class TestOpenAIModerationProvider:
    def _client(self, payload):
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        client = MagicMock()
        client.post = AsyncMock(return_value=response)
        return client

    @pytest.mark.asyncio
    async def test_parses_flagged_categories_in_order(self):
        client = self._client({
            "results": [{
                "flagged": True,
                "categories": {"violence": True, "hate": True, "sexual": False},
            }]
        })
        provider = OpenAIModerationProvider(api_key="sk-test", client=client)

        result = await provider.classify("text")

        assert result.flagged
        assert result.categories == ["hate", "violence"]
        kwargs = client.post.await_args.kwargs
        assert kwargs["json"] == {"input": "text", "model": "omni-moderation-latest"}
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIModerationProvider()
        with pytest.raises(RuntimeError):
            await provider.classify("text")

    @pytest.mark.asyncio
    async def test_missing_key_fails_open_through_gate(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        gate = ModerationGate(OpenAIModerationProvider(), enabled=True)
        result = await gate.check("text")
        assert not result.flagged
