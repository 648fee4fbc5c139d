"""Tests for the per-provider token-bucket limiter."""

import asyncio
import logging

import pytest

from procureflow.services.rate_limiter import ProviderRateLimiter
from tests.helpers import sample_value


class _Clock:
    """Manual monotonic clock; sleeping advances it."""

    def __init__(self):
        self.now = 0.0
        self.delays = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.delays.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return _Clock()


class TestAcquire:
    @pytest.mark.asyncio
    async def test_burst_then_waits_for_refill(self, clock):
        limiter = ProviderRateLimiter(limits={"acme": 2}, clock=clock, sleep=clock.sleep)

        assert await limiter.acquire("acme") == 0.0
        assert await limiter.acquire("acme") == 0.0
        waited = await limiter.acquire("acme")

        assert waited == pytest.approx(30.0)
        assert sum(clock.delays) == pytest.approx(30.0)

    @pytest.mark.asyncio
    async def test_concurrent_callers_queue(self, clock):
        limiter = ProviderRateLimiter(limits={"acme": 1}, clock=clock, sleep=clock.sleep)

        waits = await asyncio.gather(*(limiter.acquire("acme") for _ in range(3)))

        assert sorted(waits) == pytest.approx([0.0, 60.0, 120.0])
        assert sample_value("rate_limiter_queue_size", {"provider": "acme"}) == 0.0

    @pytest.mark.asyncio
    async def test_zero_limit_is_unthrottled(self, clock):
        limiter = ProviderRateLimiter(limits={"acme": 0}, clock=clock, sleep=clock.sleep)
        for _ in range(50):
            assert await limiter.acquire("acme") == 0.0
        assert clock.delays == []
        assert limiter.status("acme") is None

    @pytest.mark.asyncio
    async def test_limit_from_environment(self, clock, monkeypatch):
        monkeypatch.setenv("WIDGETAI_RPM_LIMIT", "1")
        limiter = ProviderRateLimiter(clock=clock, sleep=clock.sleep)

        await limiter.acquire("widgetai")
        await limiter.acquire("widgetai")

        assert sum(clock.delays) == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_slow_wait_logged(self, clock, caplog):
        limiter = ProviderRateLimiter(limits={"acme": 1}, clock=clock, sleep=clock.sleep)
        await limiter.acquire("acme")
        with caplog.at_level(logging.INFO, logger="procureflow.services.rate_limiter"):
            await limiter.acquire("acme")
        assert any("Rate limit delayed acme call" in r.getMessage() for r in caplog.records)


class TestRunAndStatus:
    @pytest.mark.asyncio
    async def test_run_returns_result(self, clock):
        limiter = ProviderRateLimiter(limits={"acme": 5}, clock=clock, sleep=clock.sleep)
        calls = []

        async def _call():
            calls.append(clock.now)
            return "ok"

        assert await limiter.run("acme", _call) == "ok"
        assert calls == [0.0]

    @pytest.mark.asyncio
    async def test_status(self, clock):
        limiter = ProviderRateLimiter(limits={"acme": 6}, clock=clock, sleep=clock.sleep)
        assert limiter.status("acme") is None

        await limiter.acquire("acme")
        await limiter.acquire("acme")
        clock.now += 10.0

        assert limiter.status("acme") == {
            "provider": "acme", "rpm": 6, "available": 5.0, "queued": 0,
        }
