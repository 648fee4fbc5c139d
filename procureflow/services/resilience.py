"""Retry envelope for calls to external completion providers.

Only transient failures are retried: rate limits, 5xx gateway errors,
timeouts, and connection resets. Anything else fails on the first
attempt. Exhaustion re-raises the last exception unchanged so callers
see the provider's own error type.

Usage:
    text = await with_retry("anthropic", lambda: provider.complete(p, s))
"""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from procureflow.config import get_max_retries
from procureflow.services.metrics import llm_retry_attempts_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

RETRYABLE_ERROR_NAMES = frozenset({
    "TimeoutError",
    "AbortError",
    "NetworkError",
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ConnectionResetError",
    "ConnectError",
    "ConnectTimeout",
    "ReadTimeout",
    "APITimeoutError",
    "APIConnectionError",
    "RateLimitError",
})

RETRYABLE_MESSAGE_FRAGMENTS = (
    "rate limit",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "try again",
)

BASE_DELAY_SECONDS = 1.0
MIN_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0
JITTER_RATIO = 0.2


def _status_of(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """Classify an exception as transient.

    Args:
        error: Exception raised by a provider call.

    Returns:
        True for retryable HTTP statuses, transient error type names or
        codes, and transient message text.
    """
    status = _status_of(error)
    if status is not None and status in RETRYABLE_STATUS_CODES:
        return True

    if type(error).__name__ in RETRYABLE_ERROR_NAMES:
        return True
    for attr in ("code", "errno"):
        code = getattr(error, attr, None)
        if isinstance(code, str) and code in RETRYABLE_ERROR_NAMES:
            return True

    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGE_FRAGMENTS)


def compute_backoff(attempt: int, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Delay before retry number `attempt` (1-based).

    Exponential from BASE_DELAY_SECONDS, +/-20% jitter, clamped to
    [MIN_DELAY_SECONDS, MAX_DELAY_SECONDS].
    """
    delay = BASE_DELAY_SECONDS * (2 ** (attempt - 1))
    delay *= 1 + rng(-JITTER_RATIO, JITTER_RATIO)
    return max(MIN_DELAY_SECONDS, min(MAX_DELAY_SECONDS, delay))


async def with_retry(
    provider_name: str,
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int | None = None,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> T:
    """Await fn(), retrying transient failures with backoff.

    Args:
        provider_name: Provider key used for the retry ceiling and logs.
        fn: Zero-argument coroutine factory, called once per attempt.
        max_retries: Override for the configured ceiling.
        sleep: Awaitable sleep, injectable for tests. Defaults to asyncio.sleep.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error, unchanged, when it is non-retryable or
            retries are exhausted.
    """
    retries = get_max_retries(provider_name) if max_retries is None else max_retries
    sleep = sleep or asyncio.sleep

    for attempt in range(retries + 1):
        try:
            return await fn()
        except Exception as e:
            retryable = is_retryable_error(e)
            remaining = retries - attempt

            if not retryable:
                logger.warning(
                    "%s call failed (attempt %d/%d, retries left %d, retryable=%s): %s",
                    provider_name, attempt + 1, retries + 1, remaining, False,
                    type(e).__name__,
                )
                raise

            if remaining == 0:
                logger.error(
                    "%s call failed after %d attempts, giving up: %s",
                    provider_name, attempt + 1, type(e).__name__,
                )
                raise

            delay = compute_backoff(attempt + 1)
            logger.warning(
                "%s call failed (attempt %d/%d, retries left %d, retryable=%s), "
                "retrying in %.1fs: %s",
                provider_name, attempt + 1, retries + 1, remaining, True, delay,
                type(e).__name__,
            )
            llm_retry_attempts_total.labels(provider=provider_name).inc()
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


def create_retryable(
    provider_name: str, *, max_retries: int | None = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of with_retry for async provider methods.

    Example:
        @create_retryable("gemini")
        async def generate(prompt: str) -> str: ...
    """
    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(
                provider_name,
                lambda: fn(*args, **kwargs),
                max_retries=max_retries,
            )

        return wrapper

    return decorator
