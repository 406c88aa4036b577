"""
Circuit breaker guarding best-effort side effects.

Notification delivery goes through a breaker so a failing sink stops
being hammered while bookings keep succeeding.
"""

import logging
import time
from typing import Awaitable, Callable, Any

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive failures and rejects
    calls until `reset_timeout` seconds have passed. The next call is a
    trial: success closes the circuit, failure opens it again.
    """

    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60, name: str = "default"):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = CLOSED

    def _transition(self, state: str) -> None:
        if state != self.state:
            logger.info("Circuit %s: %s -> %s", self.name, self.state, state)
            self.state = state

    def _cooled_down(self) -> bool:
        return time.time() - self.last_failure_time > self.reset_timeout

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == OPEN:
            if not self._cooled_down():
                raise CircuitOpenError(f"Circuit {self.name} is open")
            self._transition(HALF_OPEN)

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        if self.state == HALF_OPEN or self.failures:
            self.reset_state()
        return result

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.time()
        if self.state == HALF_OPEN or self.failures >= self.failure_threshold:
            self._transition(OPEN)

    def reset_state(self) -> None:
        self.failures = 0
        self._transition(CLOSED)


notification_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.notification_failure_threshold,
    reset_timeout=settings.notification_reset_timeout,
    name="notifications",
)
