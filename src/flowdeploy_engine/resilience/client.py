"""ResilientClient — retry-with-backoff plus circuit breaker around outbound calls."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from flowdeploy_engine.resilience.breaker import BreakerRegistry
from flowdeploy_engine.resilience.policy import RetryPolicy, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilientClient:
    """Wraps a single outbound operation in retry and a per-dependency breaker.

    Usage:
        result = await resilient.call("engine", lambda: http.get(url))

    ``operation`` is a zero-argument callable returning a fresh awaitable on
    every invocation, so that each attempt issues a new request.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        breakers: Optional[BreakerRegistry] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.breakers = breakers or BreakerRegistry()
        self._sleep = sleep

    async def call(
        self,
        dependency: str,
        operation: Callable[[], Awaitable[T]],
        *,
        policy: Optional[RetryPolicy] = None,
        should_retry: Callable[[BaseException], bool] = is_retryable,
        description: str = "",
    ) -> T:
        policy = policy or self.policy
        breaker = self.breakers.get(dependency)
        label = description or dependency
        attempt = 0

        while True:
            attempt += 1
            breaker.before_call()
            try:
                result = await operation()
            except Exception as exc:
                retryable = should_retry(exc)
                if retryable:
                    breaker.record_failure()
                if not retryable or attempt >= policy.max_attempts:
                    if retryable:
                        logger.error(
                            "%s failed after %d attempt(s): %s",
                            label,
                            attempt,
                            exc,
                            extra={
                                "event": "retry.exhausted",
                                "dependency": dependency,
                                "attempts": attempt,
                            },
                        )
                    raise
                delay = policy.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label,
                    attempt,
                    policy.max_attempts,
                    delay,
                    exc,
                    extra={
                        "event": "retry.scheduled",
                        "dependency": dependency,
                        "attempt": attempt,
                        "delay": delay,
                    },
                )
                await self._sleep(delay)
                continue
            breaker.record_success()
            return result
