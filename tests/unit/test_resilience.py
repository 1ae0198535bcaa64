"""Tests for retry policy, circuit breaker and ResilientClient."""

import asyncio

import httpx
import pytest

from flowdeploy_engine.common.exceptions import (
    CircuitOpenError,
    ConfigurationError,
    ExternalServiceError,
    RetryableExternalError,
)
from flowdeploy_engine.resilience.breaker import (
    BreakerConfig,
    BreakerRegistry,
    CircuitBreaker,
    CircuitState,
)
from flowdeploy_engine.resilience.client import ResilientClient
from flowdeploy_engine.resilience.policy import RetryPolicy, is_retryable


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Flaky:
    """Operation that fails ``failures`` times before returning ``result``."""

    def __init__(self, failures: int, exc: Exception | None = None, result="ok"):
        self.failures = failures
        self.exc = exc or RetryableExternalError("engine unavailable", status_code=503)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.result


# ── RetryPolicy ──


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(base_delay=1.0, backoff_multiplier=2.0)
        assert policy.delay_for(1) == 1.0
        assert policy.delay_for(2) == 2.0
        assert policy.delay_for(3) == 4.0

    def test_delay_capped_at_max(self):
        policy = RetryPolicy(base_delay=10.0, backoff_multiplier=3.0, max_delay=30.0)
        assert policy.delay_for(3) == 30.0

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0


class TestIsRetryable:
    def test_retryable_external_error(self):
        assert is_retryable(RetryableExternalError("x", status_code=503))

    def test_client_error_not_retryable(self):
        assert not is_retryable(ExternalServiceError("bad", status_code=400))

    def test_configuration_error_not_retryable(self):
        assert not is_retryable(ConfigurationError("missing"))

    def test_circuit_open_not_retryable(self):
        assert not is_retryable(CircuitOpenError("engine", 12.0))

    def test_network_errors_retryable(self):
        request = httpx.Request("GET", "http://engine.test")
        assert is_retryable(httpx.ConnectError("refused", request=request))
        assert is_retryable(httpx.ReadTimeout("slow", request=request))
        assert is_retryable(asyncio.TimeoutError())
        assert is_retryable(ConnectionResetError())

    def test_http_status_errors(self):
        request = httpx.Request("GET", "http://engine.test")
        for code, expected in ((429, True), (500, True), (503, True), (404, False), (422, False)):
            response = httpx.Response(code, request=request)
            exc = httpx.HTTPStatusError("status", request=request, response=response)
            assert is_retryable(exc) is expected

    def test_unrelated_error_not_retryable(self):
        assert not is_retryable(ValueError("boom"))


# ── ResilientClient retry ──


class TestResilientRetry:
    async def test_fails_twice_then_succeeds(self, no_sleep):
        client = ResilientClient(RetryPolicy(base_delay=1.0, backoff_multiplier=2.0), sleep=no_sleep)
        op = Flaky(failures=2)

        assert await client.call("engine", op) == "ok"
        assert op.calls == 3
        assert no_sleep.delays == [1.0, 2.0]

    async def test_exhausted_raises_last_error(self, no_sleep):
        client = ResilientClient(RetryPolicy(), sleep=no_sleep)
        op = Flaky(failures=10)

        with pytest.raises(RetryableExternalError):
            await client.call("engine", op)
        assert op.calls == 3
        assert no_sleep.delays == [1.0, 2.0]

    async def test_non_retryable_not_retried(self, no_sleep):
        client = ResilientClient(RetryPolicy(), sleep=no_sleep)
        op = Flaky(failures=1, exc=ExternalServiceError("rejected", status_code=400))

        with pytest.raises(ExternalServiceError):
            await client.call("engine", op)
        assert op.calls == 1
        assert no_sleep.delays == []
        assert client.breakers.get("engine").failure_count == 0

    async def test_custom_predicate(self, no_sleep):
        client = ResilientClient(RetryPolicy(), sleep=no_sleep)
        op = Flaky(failures=1, exc=ValueError("transient"))

        result = await client.call("engine", op, should_retry=lambda e: isinstance(e, ValueError))
        assert result == "ok"
        assert op.calls == 2

    async def test_per_call_policy(self, no_sleep):
        client = ResilientClient(RetryPolicy(max_attempts=3), sleep=no_sleep)
        op = Flaky(failures=10)

        with pytest.raises(RetryableExternalError):
            await client.call("engine", op, policy=RetryPolicy(max_attempts=1))
        assert op.calls == 1


# ── Circuit breaker ──


class TestCircuitBreaker:
    def test_opens_after_threshold(self):
        breaker = CircuitBreaker("engine", BreakerConfig(failure_threshold=5), clock=FakeClock())
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_open_rejects_with_retry_after(self):
        clock = FakeClock()
        breaker = CircuitBreaker("engine", BreakerConfig(failure_threshold=1, reset_timeout=60.0), clock=clock)
        breaker.record_failure()
        clock.now += 15
        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.before_call()
        assert exc_info.value.retry_after == pytest.approx(45.0)
        assert exc_info.value.breaker == "engine"

    def test_success_resets_consecutive_failures(self):
        breaker = CircuitBreaker("engine", clock=FakeClock())
        for _ in range(4):
            breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 0
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker("engine", BreakerConfig(failure_threshold=1), clock=clock)
        breaker.record_failure()
        clock.now += 61
        breaker.before_call()
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.retry_after() == pytest.approx(60.0)

    def test_reset(self):
        breaker = CircuitBreaker("engine", BreakerConfig(failure_threshold=1), clock=FakeClock())
        breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestBreakerThroughClient:
    async def test_full_cycle(self, no_sleep):
        clock = FakeClock()
        registry = BreakerRegistry(BreakerConfig(), clock=clock)
        client = ResilientClient(RetryPolicy(max_attempts=1), registry, sleep=no_sleep)
        failing = Flaky(failures=100)

        for _ in range(5):
            with pytest.raises(RetryableExternalError):
                await client.call("engine", failing)
        assert registry.get("engine").state == CircuitState.OPEN

        # Sixth call fails without invoking the operation.
        with pytest.raises(CircuitOpenError):
            await client.call("engine", failing)
        assert failing.calls == 5

        clock.now += 60
        healthy = Flaky(failures=0)
        assert await client.call("engine", healthy) == "ok"
        assert registry.get("engine").state == CircuitState.HALF_OPEN

        await client.call("engine", healthy)
        await client.call("engine", healthy)
        breaker = registry.get("engine")
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_open_breaker_is_not_retried(self, no_sleep):
        registry = BreakerRegistry(BreakerConfig(failure_threshold=1), clock=FakeClock())
        client = ResilientClient(RetryPolicy(max_attempts=3), registry, sleep=no_sleep)
        op = Flaky(failures=100)

        # First call: one failure opens the breaker, the retry hits the open breaker.
        with pytest.raises(CircuitOpenError):
            await client.call("engine", op)
        assert op.calls == 1

    async def test_breakers_are_per_dependency(self, no_sleep):
        registry = BreakerRegistry(BreakerConfig(failure_threshold=1), clock=FakeClock())
        client = ResilientClient(RetryPolicy(max_attempts=1), registry, sleep=no_sleep)

        with pytest.raises(RetryableExternalError):
            await client.call("oauth:gmail", Flaky(failures=1))
        assert await client.call("engine", Flaky(failures=0)) == "ok"

        snapshot = {b["name"]: b for b in registry.snapshot()}
        assert snapshot["oauth:gmail"]["state"] == "open"
        assert snapshot["engine"]["state"] == "closed"
