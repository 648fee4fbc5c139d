"""Tests for the completion-provider retry envelope."""

import logging

import httpx
import pytest

from procureflow.services.resilience import (
    MAX_DELAY_SECONDS,
    MIN_DELAY_SECONDS,
    compute_backoff,
    create_retryable,
    is_retryable_error,
    with_retry,
)
from tests.helpers import StatusError, sample_value


class _Recorder:
    """Async sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class _Flaky:
    """Coroutine factory that fails `failures` times, then returns 'ok'."""

    def __init__(self, error, failures):
        self.error = error
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestIsRetryable:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_retryable_error(StatusError(status))

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_errors_not_retryable(self, status):
        assert not is_retryable_error(StatusError(status, "bad request"))

    def test_transport_errors(self):
        assert is_retryable_error(httpx.ConnectError("refused"))
        assert is_retryable_error(TimeoutError())

    def test_error_code_attribute(self):
        err = OSError("socket closed")
        err.code = "ECONNRESET"
        assert is_retryable_error(err)

    def test_message_text(self):
        assert is_retryable_error(RuntimeError("Rate limit exceeded"))
        assert is_retryable_error(RuntimeError("service temporarily unavailable"))
        assert not is_retryable_error(ValueError("invalid model"))

    def test_status_on_response(self):
        err = RuntimeError("wrapped")
        err.response = httpx.Response(503)
        assert is_retryable_error(err)


class TestComputeBackoff:
    def test_exponential_without_jitter(self):
        no_jitter = lambda lo, hi: 0.0  # noqa: E731
        assert compute_backoff(1, no_jitter) == 1.0
        assert compute_backoff(2, no_jitter) == 2.0
        assert compute_backoff(3, no_jitter) == 4.0

    def test_clamped(self):
        assert compute_backoff(1, lambda lo, hi: lo) == MIN_DELAY_SECONDS
        assert compute_backoff(10, lambda lo, hi: hi) == MAX_DELAY_SECONDS

    def test_jitter_bounds(self):
        for _ in range(50):
            assert 1.6 <= compute_backoff(2) <= 2.4


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = _Recorder()
        fn = _Flaky(StatusError(429), failures=0)
        assert await with_retry("anthropic", fn, max_retries=3, sleep=sleep) == "ok"
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        sleep = _Recorder()
        fn = _Flaky(StatusError(503), failures=2)
        assert await with_retry("anthropic", fn, max_retries=3, sleep=sleep) == "ok"
        assert fn.calls == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,max_retries", [("anthropic", 3), ("gemini", 4)])
    async def test_rate_limit_fails_exactly_ceiling_times_then_succeeds(
        self, caplog, monkeypatch, provider, max_retries
    ):
        monkeypatch.delenv(f"{provider.upper()}_MAX_RETRIES", raising=False)
        sleep = _Recorder()
        fn = _Flaky(StatusError(429, "rate limited"), failures=max_retries)
        before = sample_value("llm_retry_attempts_total", {"provider": provider})

        with caplog.at_level(logging.WARNING, logger="procureflow.services.resilience"):
            result = await with_retry(provider, fn, sleep=sleep)

        assert result == "ok"
        assert fn.calls == max_retries + 1
        assert len(sleep.delays) == max_retries
        records = [r for r in caplog.records if r.name == "procureflow.services.resilience"]
        assert [r.levelno for r in records] == [logging.WARNING] * max_retries
        assert sample_value("llm_retry_attempts_total", {"provider": provider}) == before + max_retries

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, caplog):
        sleep = _Recorder()
        error = StatusError(429, "rate limited")
        fn = _Flaky(error, failures=10)
        before = sample_value("llm_retry_attempts_total", {"provider": "anthropic"})

        with caplog.at_level(logging.WARNING, logger="procureflow.services.resilience"):
            with pytest.raises(StatusError) as exc_info:
                await with_retry("anthropic", fn, max_retries=3, sleep=sleep)

        assert exc_info.value is error
        assert fn.calls == 4
        assert len(sleep.delays) == 3
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(warnings) == 3
        assert len(errors) == 1
        assert sample_value("llm_retry_attempts_total", {"provider": "anthropic"}) == before + 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_once(self):
        sleep = _Recorder()
        fn = _Flaky(StatusError(400, "bad request"), failures=10)
        with pytest.raises(StatusError):
            await with_retry("anthropic", fn, max_retries=3, sleep=sleep)
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_ceiling_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_MAX_RETRIES", "1")
        sleep = _Recorder()
        fn = _Flaky(StatusError(502), failures=10)
        with pytest.raises(StatusError):
            await with_retry("gemini", fn, sleep=sleep)
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        fn = _Flaky(StatusError(429), failures=10)
        with pytest.raises(StatusError):
            await with_retry("anthropic", fn, max_retries=0, sleep=_Recorder())
        assert fn.calls == 1


class TestCreateRetryable:
    @pytest.mark.asyncio
    async def test_decorated_function_is_retried(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("procureflow.services.resilience.asyncio.sleep", fake_sleep)
        attempts = []

        @create_retryable("anthropic", max_retries=2)
        async def generate(prompt):
            attempts.append(prompt)
            if len(attempts) < 2:
                raise StatusError(500)
            return prompt.upper()

        assert await generate("hi") == "HI"
        assert attempts == ["hi", "hi"]
        assert len(sleeps) == 1
        assert generate.__name__ == "generate"
