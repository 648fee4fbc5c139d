"""Prometheus metrics for the conversational orchestrator.

Metrics are module-level singletons registered on the default registry
and exposed by GET /metrics.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

validation_errors_total = Counter(
    "validation_errors_total",
    "Total number of rejected inputs and tool arguments",
    ["type"],
)

prompt_injection_detections_total = Counter(
    "prompt_injection_detections_total",
    "Prompt-injection detections by pattern category",
    ["category"],
)

moderation_rejections_total = Counter(
    "moderation_rejections_total",
    "Messages rejected by the moderation gate, by first flagged category",
    ["category"],
)

tool_executions_total = Counter(
    "tool_executions_total",
    "Tool invocations by tool name and outcome",
    ["tool", "status"],
)

agent_turn_duration_seconds = Histogram(
    "agent_turn_duration_seconds",
    "End-to-end latency of one agent turn",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

llm_retry_attempts_total = Counter(
    "llm_retry_attempts_total",
    "Retried completion-provider calls",
    ["provider"],
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Tokens consumed by completion providers",
    ["provider", "model", "type"],
)

llm_cost_usd_total = Counter(
    "llm_cost_usd_total",
    "Estimated completion spend in USD",
    ["provider", "model"],
)

rate_limiter_queue_size = Gauge(
    "rate_limiter_queue_size",
    "Completion calls waiting on the provider rate limiter",
    ["provider"],
)


def get_metrics() -> bytes:
    """Render the default registry in Prometheus text format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
