"""Tests for token and cost accounting."""

import logging

import pytest

from procureflow.services.token_usage import TokenUsage, estimate_cost, record_usage
from tests.helpers import sample_value


class TestEstimateCost:
    def test_known_model(self):
        assert estimate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)

    def test_sonnet_rates(self):
        assert estimate_cost("claude-sonnet-4-20250514", 2_000, 1_000) == pytest.approx(0.021)

    def test_unknown_model_is_free(self, caplog):
        with caplog.at_level(logging.WARNING, logger="procureflow.services.token_usage"):
            assert estimate_cost("house-model-1", 500, 500) == 0.0
        assert "No pricing for model house-model-1" in caplog.text


class TestRecordUsage:
    def test_counts_tokens_and_cost(self):
        labels = {"provider": "openai", "model": "gpt-4o"}
        tokens_in = sample_value("llm_tokens_total", {**labels, "type": "input"})
        tokens_out = sample_value("llm_tokens_total", {**labels, "type": "output"})
        spent = sample_value("llm_cost_usd_total", labels)

        cost = record_usage(TokenUsage("openai", "gpt-4o", input_tokens=1_000, output_tokens=200))

        assert cost == pytest.approx(0.0045)
        assert sample_value("llm_tokens_total", {**labels, "type": "input"}) == tokens_in + 1_000
        assert sample_value("llm_tokens_total", {**labels, "type": "output"}) == tokens_out + 200
        assert sample_value("llm_cost_usd_total", labels) == pytest.approx(spent + 0.0045)

    def test_total_tokens(self):
        assert TokenUsage("gemini", "gemini-2.0-flash", 7, 5).total_tokens == 12
