"""Circuit breaker for provider gateways.

The circuit breaker stops sending requests to a provider that is already
failing, giving it time to recover instead of hammering it with retries.

State Machine:
    CLOSED -> (failures >= threshold within window) -> OPEN
    OPEN -> (checked after reset timeout) -> HALF_OPEN
    HALF_OPEN -> (success) -> CLOSED
    HALF_OPEN -> (failure) -> OPEN

Each gateway owns its own CircuitBreaker instance. Concurrent callers share
it without a lock; two callers may both probe while HALF_OPEN.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests allowed
    OPEN = "open"  # Failures exceeded threshold, requests blocked
    HALF_OPEN = "half_open"  # Probing recovery, requests allowed


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a sliding failure window.

    Example:
        breaker = CircuitBreaker(provider_id="anthropic")

        breaker.check()  # raises CircuitOpenError while open
        try:
            response = await send()
        except Exception:
            breaker.on_failure()
            raise
        breaker.on_success()
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        failure_window_seconds: float = 60.0,
        reset_timeout_seconds: float = 30.0,
        provider_id: str = "default",
    ):
        """Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures within the window that open the circuit.
            failure_window_seconds: Window, measured from the first failure, in which
                failures accumulate.
            reset_timeout_seconds: Time the circuit stays open before a probe is allowed.
            provider_id: Identifier of the provider this breaker protects.
        """
        self.failure_threshold = failure_threshold
        self.failure_window_seconds = failure_window_seconds
        self.reset_timeout_seconds = reset_timeout_seconds
        self.provider_id = provider_id

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._first_failure_at = 0.0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        """Return the current circuit state."""
        return self._state

    @property
    def consecutive_failures(self) -> int:
        """Return the failure count of the current window."""
        return self._consecutive_failures

    @property
    def opened_at(self) -> float:
        """Return the time the circuit last opened (0.0 if never)."""
        return self._opened_at

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now

    def check(self) -> None:
        """Gate a request attempt.

        Moves OPEN to HALF_OPEN once the reset timeout has elapsed.

        Raises:
            CircuitOpenError: If the circuit is open and the timeout has not elapsed.
        """
        if self._state != CircuitState.OPEN:
            return

        now = time.time()
        if now - self._opened_at >= self.reset_timeout_seconds:
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker half-open for %s, allowing probe request", self.provider_id)
            return

        raise CircuitOpenError(
            f"Provider {self.provider_id} temporarily unavailable (circuit breaker open)",
            provider=self.provider_id,
        )

    def on_success(self) -> None:
        """Record a successful attempt; always closes the circuit."""
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker closed for %s, provider recovered", self.provider_id)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._first_failure_at = 0.0

    def on_failure(self) -> None:
        """Record a failed attempt and open the circuit if warranted."""
        now = time.time()

        if (
            self._first_failure_at == 0.0
            or now - self._first_failure_at > self.failure_window_seconds
        ):
            # New window
            self._first_failure_at = now
            self._consecutive_failures = 1
        else:
            self._consecutive_failures += 1

        if self._consecutive_failures >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    "Circuit breaker OPEN for %s after %d consecutive failures",
                    self.provider_id,
                    self._consecutive_failures,
                )
            self._open(now)
        elif self._state == CircuitState.HALF_OPEN:
            logger.warning("Circuit breaker re-opened for %s, probe request failed", self.provider_id)
            self._open(now)

    def reset(self) -> None:
        """Return to the cold-start state."""
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._first_failure_at = 0.0
        self._opened_at = 0.0

    def get_stats(self) -> Dict[str, Any]:
        """Return current circuit breaker statistics.

        Returns:
            Dict with state, counts, and timing information.
        """
        return {
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "first_failure_at": self._first_failure_at or None,
            "opened_at": self._opened_at or None,
            "failure_threshold": self.failure_threshold,
            "failure_window_seconds": self.failure_window_seconds,
            "reset_timeout_seconds": self.reset_timeout_seconds,
            "provider_id": self.provider_id,
        }
