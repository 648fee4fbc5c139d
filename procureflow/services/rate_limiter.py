"""Per-provider request throttling for completion calls.

Each provider gets a token bucket holding its requests-per-minute budget
and refilling continuously. Callers queue behind a per-provider lock, so
a burst waits in arrival order rather than failing with 429s.

Usage:
    limiter = ProviderRateLimiter()
    text = await limiter.run("gemini", lambda: provider.complete(p, s))
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from procureflow.config import get_rpm_limit
from procureflow.services.metrics import rate_limiter_queue_size

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUEUE_WARNING_THRESHOLD = 10
SLOW_WAIT_SECONDS = 1.0
# Float refill can land a hair under a whole token
_TOKEN_EPSILON = 1e-9


class _Bucket:
    def __init__(self, rpm: int, now: float) -> None:
        self.capacity = float(rpm)
        self.tokens = float(rpm)
        self.refill_per_second = rpm / 60.0
        self.updated = now
        self.lock = asyncio.Lock()
        self.waiting = 0

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_second)
        self.updated = now

    def wait_time(self) -> float:
        return (1.0 - self.tokens) / self.refill_per_second


class ProviderRateLimiter:
    """Token-bucket limiter keyed by provider name.

    Attributes:
        limits: Explicit requests-per-minute per provider; providers not
            listed resolve through get_rpm_limit. 0 disables throttling.
    """

    def __init__(
        self,
        limits: dict[str, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.limits = dict(limits or {})
        self._clock = clock
        self._sleep = sleep
        self._buckets: dict[str, _Bucket | None] = {}

    def _bucket(self, provider_name: str) -> _Bucket | None:
        if provider_name not in self._buckets:
            rpm = self.limits.get(provider_name)
            if rpm is None:
                rpm = get_rpm_limit(provider_name)
            self._buckets[provider_name] = _Bucket(rpm, self._clock()) if rpm > 0 else None
            logger.info("Rate limiter created: provider=%s rpm=%d", provider_name, rpm)
        return self._buckets[provider_name]

    async def acquire(self, provider_name: str) -> float:
        """Take one request slot, waiting until the bucket has one.

        Returns:
            Seconds spent waiting.
        """
        bucket = self._bucket(provider_name)
        if bucket is None:
            return 0.0

        sleep = self._sleep or asyncio.sleep
        started = self._clock()
        bucket.waiting += 1
        rate_limiter_queue_size.labels(provider=provider_name).set(bucket.waiting)
        if bucket.waiting > QUEUE_WARNING_THRESHOLD:
            logger.warning(
                "Rate limiter queue growing: provider=%s queued=%d", provider_name, bucket.waiting
            )
        try:
            async with bucket.lock:
                bucket.refill(self._clock())
                while bucket.tokens < 1.0 - _TOKEN_EPSILON:
                    await sleep(bucket.wait_time())
                    bucket.refill(self._clock())
                bucket.tokens = max(0.0, bucket.tokens - 1.0)
        finally:
            bucket.waiting -= 1
            rate_limiter_queue_size.labels(provider=provider_name).set(bucket.waiting)

        waited = self._clock() - started
        if waited > SLOW_WAIT_SECONDS:
            logger.info("Rate limit delayed %s call by %.1fs", provider_name, waited)
        return waited

    async def run(self, provider_name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Await fn() once a request slot for provider_name is free."""
        await self.acquire(provider_name)
        return await fn()

    def status(self, provider_name: str) -> dict[str, Any] | None:
        """Current bucket state, or None when the provider is unthrottled or unused."""
        bucket = self._buckets.get(provider_name)
        if bucket is None:
            return None
        bucket.refill(self._clock())
        return {
            "provider": provider_name,
            "rpm": int(bucket.capacity),
            "available": round(bucket.tokens, 3),
            "queued": bucket.waiting,
        }
