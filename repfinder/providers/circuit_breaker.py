"""Per-provider circuit breaker.

CLOSED passes every call. After ``failure_threshold`` consecutive failed
calls the breaker goes OPEN and rejects calls until ``recovery_timeout``
seconds have passed since the last failure. It then reports HALF_OPEN and
hands out a single probe slot: concurrent resolutions sharing the provider
keep failing fast while the probe is in flight. The probe's outcome closes
or re-opens the breaker.

A "call" is one BaseProvider._request_with_retry invocation, so retries
inside it count as one failure.
"""

import enum
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """A provider call was rejected without touching the network.

    Attributes:
        source_name: Provider whose breaker rejected the call.
        retry_in: Seconds until the breaker will admit a probe.
    """

    def __init__(self, source_name: str, retry_in: float = 0.0):
        self.source_name = source_name
        self.retry_in = retry_in
        super().__init__(
            f"Circuit breaker OPEN for '{source_name}': "
            f"failing fast, next probe in {retry_in:.0f}s"
        )


class CircuitBreaker:
    """Failure gate for one upstream provider.

    Args:
        name: Provider source name, used in log lines.
        failure_threshold: Consecutive failed calls that open the breaker.
        recovery_timeout: Seconds spent OPEN before a probe is admitted.
        clock: Monotonic time source; tests inject a MockClock.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock or time.monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._probe_in_flight = False

    def _move_to(self, state: CircuitState, reason: str) -> None:
        previous, self._state = self._state, state
        level = logging.WARNING if state == CircuitState.OPEN else logging.INFO
        logger.log(level, "%s: breaker %s -> %s (%s)", self.name, previous.name, state.name, reason)

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.retry_in() == 0:
            self._move_to(CircuitState.HALF_OPEN, f"{self.recovery_timeout:.0f}s cool-down elapsed")
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_call_permitted(self) -> bool:
        """True when acquire() would currently succeed."""
        state = self.state
        return state == CircuitState.CLOSED or (
            state == CircuitState.HALF_OPEN and not self._probe_in_flight
        )

    def retry_in(self) -> float:
        """Seconds left in the OPEN cool-down; 0 when not OPEN."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self._last_failure_time))

    def acquire(self) -> bool:
        """Claim permission for one call; in HALF_OPEN this takes the probe slot."""
        if not self.is_call_permitted:
            return False
        if self._state == CircuitState.HALF_OPEN:
            self._probe_in_flight = True
        return True

    def release(self) -> None:
        """Give back a probe slot whose call ended without an outcome."""
        self._probe_in_flight = False

    def record_success(self) -> None:
        self._failure_count = 0
        self._probe_in_flight = False
        if self._state == CircuitState.HALF_OPEN:
            self._move_to(CircuitState.CLOSED, "probe succeeded")

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()
        self._probe_in_flight = False
        if self._state == CircuitState.HALF_OPEN:
            self._move_to(CircuitState.OPEN, "probe failed")
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._move_to(
                CircuitState.OPEN,
                f"{self._failure_count} consecutive failures, threshold {self.failure_threshold}",
            )

    def reset(self) -> None:
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._probe_in_flight = False
        if self._state != CircuitState.CLOSED:
            self._move_to(CircuitState.CLOSED, "manual reset")
