"""Retry policy and error classification for outbound calls."""

import asyncio
from dataclasses import dataclass

import httpx

from flowdeploy_engine.common.exceptions import (
    CircuitOpenError,
    ExternalServiceError,
    FlowDeployError,
    RetryableExternalError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings for one outbound call."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based).

        >>> RetryPolicy(base_delay=1.0).delay_for(1)
        1.0
        >>> RetryPolicy(base_delay=1.0).delay_for(2)
        2.0
        """
        return min(
            self.base_delay * (self.backoff_multiplier ** (attempt - 1)),
            self.max_delay,
        )


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def is_retryable(exc: BaseException) -> bool:
    """Default retry predicate.

    Network errors, timeouts, 5xx and 429 are retried. Validation-style 4xx,
    configuration errors and open breakers are not.
    """
    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, RetryableExternalError):
        return True
    if isinstance(exc, ExternalServiceError):
        return False
    if isinstance(exc, FlowDeployError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return is_retryable_status(exc.response.status_code)
    return isinstance(
        exc,
        (httpx.TransportError, httpx.TimeoutException, asyncio.TimeoutError, ConnectionError),
    )
