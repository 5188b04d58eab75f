"""Circuit breaker for outbound delivery channels.

Stops hammering a provider that keeps failing. After N consecutive
failures the breaker opens and rejects calls outright; once the recovery
timeout elapses a single trial call is let through (half-open). The trial
closes the breaker on success and reopens it on failure.

One breaker exists per channel and per process. State transitions are
serialized by a thread lock: no critical section awaits, so the breaker
can be shared by tasks that each run on their own event loop, and a
burst of concurrent callers cannot race past the threshold or sneak a
second trial into half-open.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from core import metrics
from core.exceptions import CircuitOpenError, is_retryable

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


_STATE_GAUGE = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


class CircuitBreaker:
    """Per-channel circuit breaker."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        counts_as_failure: Callable[[BaseException], bool] = is_retryable,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.counts_as_failure = counts_as_failure
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, operation: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: the breaker rejected the call without running it.
        """
        is_trial = await self._acquire()
        try:
            result = await operation(*args, **kwargs)
        except BaseException as exc:
            if isinstance(exc, Exception) and self.counts_as_failure(exc):
                await self.record_failure(str(exc))
            elif is_trial:
                # Cancelled or permanently rejected trial: let someone else probe.
                with self._lock:
                    self._trial_in_flight = False
            raise
        await self.record_success()
        return result

    async def _acquire(self) -> bool:
        """Admit or reject a call. Returns True when it is the half-open trial."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed < self.recovery_timeout:
                    self._reject(self.recovery_timeout - elapsed)
                self._transition(CircuitState.HALF_OPEN)
                logger.info(f"Circuit half-open for {self.name} after {elapsed:.0f}s cooldown")

            if self._trial_in_flight:
                self._reject(0.0)
            self._trial_in_flight = True
            return True

    def _reject(self, retry_after: float) -> None:
        metrics.inc(metrics.CIRCUIT_REJECTIONS, labels={"channel": self.name})
        raise CircuitOpenError(self.name, retry_after=retry_after)

    async def record_success(self) -> None:
        """A call succeeded: reset the failure streak and close."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Circuit CLOSED for {self.name} after successful call")
            self._failure_count = 0
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED)

    async def record_failure(self, error: Optional[str] = None) -> None:
        """A call failed: may trip (or re-trip) the breaker."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._transition(CircuitState.OPEN)
                logger.warning(f"Circuit re-OPENED for {self.name}: trial call failed ({error})")
            elif self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.error(
                        f"Circuit OPENED for {self.name} after "
                        f"{self._failure_count} consecutive failures. "
                        f"Cooldown: {self.recovery_timeout}s. Last error: {error}"
                    )
                self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        self._state = state
        metrics.gauge_set(metrics.CIRCUIT_STATE, _STATE_GAUGE[state], labels={"channel": self.name})

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failure_count,
            "last_failure": self._last_failure_time,
        }

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED)


class CircuitBreakerRegistry:
    """Holds one breaker per channel name, created on first use."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def get_status(self) -> dict:
        return {name: b.get_status() for name, b in self._breakers.items()}

    def reset(self, name: Optional[str] = None) -> None:
        targets = [self._breakers[name]] if name in self._breakers else (
            [] if name else list(self._breakers.values())
        )
        for breaker in targets:
            breaker.reset()
