"""Circuit breaker for remote dependencies.

One breaker per named dependency (``engine``, ``oauth:gmail``, ...). The
breaker counts consecutive retryable failures:

    CLOSED --failure_threshold failures--> OPEN
    OPEN --reset_timeout elapsed, next call--> HALF_OPEN
    HALF_OPEN --one failure--> OPEN
    HALF_OPEN --success_threshold successes--> CLOSED

Calls made while OPEN raise ``CircuitOpenError`` without touching the network.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from flowdeploy_engine.common.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerConfig:
    failure_threshold: int = 5
    reset_timeout: float = 60.0  # seconds
    success_threshold: int = 3


class CircuitBreaker:
    """Thread-safe consecutive-failure circuit breaker."""

    def __init__(
        self,
        name: str,
        config: Optional[BreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or BreakerConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    def retry_after(self) -> float:
        """Seconds left until an OPEN breaker lets a trial call through."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            elapsed = self._clock() - self._opened_at
            return max(self.config.reset_timeout - elapsed, 0.0)

    def before_call(self) -> None:
        """Admit or reject a call. Raises CircuitOpenError when rejecting."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return
            remaining = self.retry_after()
            if remaining > 0:
                raise CircuitOpenError(self.name, remaining)
            self._transition_to(CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                return
            self._failure_count += 1
            if (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        with self._lock:
            self._transition_to(CircuitState.CLOSED)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._failure_count = 0
        self._success_count = 0
        self._state = new_state
        if old_state != new_state:
            logger.warning(
                "Circuit breaker '%s' state changed: %s -> %s",
                self.name,
                old_state.value,
                new_state.value,
                extra={
                    "event": "breaker.transition",
                    "breaker": self.name,
                    "from_state": old_state.value,
                    "to_state": new_state.value,
                    "failure_count": self._failure_count,
                },
            )


class BreakerRegistry:
    """Process-wide set of named breakers sharing one configuration."""

    def __init__(
        self,
        config: Optional[BreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or BreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, self.config, clock=self._clock)
                self._breakers[name] = breaker
            return breaker

    def snapshot(self) -> list[dict]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [
            {
                "name": b.name,
                "state": b.state.value,
                "failure_count": b.failure_count,
                "success_count": b.success_count,
                "retry_after": round(b.retry_after(), 3),
            }
            for b in sorted(breakers, key=lambda b: b.name)
        ]
