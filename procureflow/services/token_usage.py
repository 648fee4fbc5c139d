"""Token and cost accounting for completion calls.

Every provider reports the usage block of each response here. Counts
and the estimated USD cost feed the llm_tokens_total and
llm_cost_usd_total counters exposed on /metrics.
"""

import logging
from dataclasses import dataclass

from procureflow.services.metrics import llm_cost_usd_total, llm_tokens_total

logger = logging.getLogger(__name__)

# USD per million tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-3-5-haiku-latest": (0.8, 4.0),
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
    "gpt-4-turbo": (10.0, 30.0),
    "gpt-3.5-turbo": (0.5, 1.5),
    "gemini-2.0-flash": (0.0, 0.0),
    "gemini-1.5-flash": (0.075, 0.3),
    "gemini-1.5-pro": (1.25, 5.0),
}


@dataclass(frozen=True)
class TokenUsage:
    """Usage reported for one completion call."""

    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of a call. Unknown models cost 0.0."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("No pricing for model %s, recording zero cost", model)
        return 0.0
    input_rate, output_rate = pricing
    return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate


def record_usage(usage: TokenUsage) -> float:
    """Count a call's tokens and estimated cost.

    Args:
        usage: Token counts from the provider response.

    Returns:
        The estimated cost in USD.
    """
    cost = estimate_cost(usage.model, usage.input_tokens, usage.output_tokens)
    llm_tokens_total.labels(
        provider=usage.provider, model=usage.model, type="input"
    ).inc(max(usage.input_tokens, 0))
    llm_tokens_total.labels(
        provider=usage.provider, model=usage.model, type="output"
    ).inc(max(usage.output_tokens, 0))
    llm_cost_usd_total.labels(provider=usage.provider, model=usage.model).inc(max(cost, 0.0))
    logger.info(
        "Completion usage: provider=%s model=%s input=%d output=%d cost_usd=%.6f",
        usage.provider, usage.model, usage.input_tokens, usage.output_tokens, cost,
    )
    return cost
