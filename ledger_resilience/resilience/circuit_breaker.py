"""
Ledger Resilience - Circuit Breaker Pattern

Prevents hammering a failing network operation by failing fast after a run
of failures.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Operation failing, calls are rejected without being invoked
- HALF_OPEN: One trial call tests whether the operation recovered

Transitions:
- CLOSED -> OPEN: failure_count reaches failure_threshold
- OPEN -> HALF_OPEN: reset timeout elapsed since the last failure
- HALF_OPEN -> CLOSED: trial call succeeds
- HALF_OPEN -> OPEN: trial call fails
"""

import inspect
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT_MS = 60000


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker."""

    state: CircuitState
    failure_count: int
    last_failure_time: float | None


class CircuitBreaker:
    """
    Circuit breaker for a single operation key.

    Usage:
        cb = CircuitBreaker("token.mint", failure_threshold=5)
        receipt = await cb.execute(submit_mint)

        if cb.state == CircuitState.OPEN:
            ...

    State is read-only from the outside; only execute() drives transitions.
    The lock guards bookkeeping only, the operation runs outside it.
    """

    def __init__(
        self,
        key: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_ms: int = DEFAULT_RESET_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            key: Operation key this breaker guards
            failure_threshold: Failures before opening the circuit (default: 5)
            reset_timeout_ms: Milliseconds in OPEN before a trial is admitted (default: 60000)
            clock: Monotonic clock returning seconds
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if reset_timeout_ms < 0:
            raise ValueError("reset_timeout_ms must be non-negative")

        self.key = key
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    def get_state(self) -> CircuitSnapshot:
        """Snapshot of state, failure count and last failure time."""
        with self._lock:
            return CircuitSnapshot(self._state, self._failure_count, self._last_failure_time)

    def next_recovery_time(self) -> float | None:
        """Clock time after which an OPEN breaker admits a trial, else None."""
        if self._state is not CircuitState.OPEN or self._last_failure_time is None:
            return None
        return self._last_failure_time + self.reset_timeout_ms / 1000.0

    async def execute(self, operation: Callable[[], Any], operation_name: str | None = None) -> Any:
        """
        Execute an operation through the circuit breaker.

        Args:
            operation: Zero-argument callable (sync or async)
            operation_name: Label used in logs (defaults to the breaker key)

        Returns:
            Operation result

        Raises:
            CircuitOpenError: If the circuit rejects the call
            Exception: Any exception from the operation
        """
        name = operation_name or self.key
        is_trial = self._admit(name)
        settled = False

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            settled = True
            self._record_failure(name, is_trial, e)
            raise
        else:
            settled = True
            self._record_success(name, is_trial)
            return result
        finally:
            if is_trial and not settled:
                # Cancelled or interrupted trial: free the slot, keep the state
                with self._lock:
                    self._trial_in_flight = False

    def _admit(self, name: str) -> bool:
        """Gate a call; returns True when the call is the half-open trial."""
        with self._lock:
            if self._state is CircuitState.OPEN and self._reset_timeout_elapsed():
                self._transition_to(CircuitState.HALF_OPEN)
                self._failure_count = 0

            if self._state is CircuitState.OPEN:
                raise self._open_error(CircuitState.OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    # Another caller already holds the trial slot
                    raise self._open_error(CircuitState.HALF_OPEN)
                self._trial_in_flight = True
                logger.debug(f"Circuit '{self.key}' admitting trial call", extra={"key": self.key, "operation": name})
                return True

            return False

    def _reset_timeout_elapsed(self) -> bool:
        if self._last_failure_time is None:
            return True
        elapsed_ms = (self._clock() - self._last_failure_time) * 1000.0
        return elapsed_ms > self.reset_timeout_ms

    def _record_success(self, name: str, is_trial: bool) -> None:
        with self._lock:
            if is_trial:
                self._trial_in_flight = False
                self._failure_count = 0
                self._transition_to(CircuitState.CLOSED)

    def _record_failure(self, name: str, is_trial: bool, error: Exception) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            logger.debug(
                "Circuit breaker failure recorded",
                extra={
                    "key": self.key,
                    "operation": name,
                    "error": str(error),
                    "error_type": type(error).__name__,
                    "failure_count": self._failure_count,
                },
            )

            if is_trial:
                self._trial_in_flight = False
                self._transition_to(CircuitState.OPEN)
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Move to a new state. Caller holds the lock."""
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            f"Circuit '{self.key}' transitioned: {old_state.value} -> {new_state.value}",
            extra={
                "key": self.key,
                "old_state": old_state.value,
                "new_state": new_state.value,
                "failure_count": self._failure_count,
            },
        )

    def _open_error(self, state: CircuitState) -> CircuitOpenError:
        return CircuitOpenError(
            key=self.key,
            state=state.value,
            failure_count=self._failure_count,
            reset_timeout_ms=self.reset_timeout_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        snapshot = self.get_state()
        return {
            "key": self.key,
            "state": snapshot.state.value,
            "failure_count": snapshot.failure_count,
            "last_failure_time": snapshot.last_failure_time,
            "failure_threshold": self.failure_threshold,
            "reset_timeout_ms": self.reset_timeout_ms,
        }


class CircuitBreakerManager:
    """
    Creates and owns circuit breakers, one per operation key.

    Breakers for different keys share no state. Discarding or resetting a
    key drops its breaker; the next lookup creates a fresh one.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_ms: int = DEFAULT_RESET_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker manager.

        Args:
            failure_threshold: Failures before a breaker opens (default: 5)
            reset_timeout_ms: Milliseconds before an open breaker admits a trial (default: 60000)
            clock: Monotonic clock shared by all breakers
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Any) -> "CircuitBreakerManager":
        """Build a manager from a loaded ResilienceConfig."""
        settings = config.circuit_breaker
        return cls(
            failure_threshold=settings.failure_threshold,
            reset_timeout_ms=settings.reset_timeout_ms,
        )

    def get_breaker(self, key: str) -> CircuitBreaker:
        """Get or create the circuit breaker for a key."""
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    key,
                    failure_threshold=self.failure_threshold,
                    reset_timeout_ms=self.reset_timeout_ms,
                    clock=self._clock,
                )
                self._breakers[key] = breaker
                logger.info(
                    f"Created circuit breaker for {key}",
                    extra={
                        "key": key,
                        "failure_threshold": self.failure_threshold,
                        "reset_timeout_ms": self.reset_timeout_ms,
                    },
                )
            return breaker

    async def call(self, key: str, operation: Callable[[], Any]) -> Any:
        """Execute an operation with the breaker for ``key``."""
        return await self.get_breaker(key).execute(operation, key)

    def get_state(self, key: str) -> CircuitState:
        """Current state for a key; unknown keys are CLOSED."""
        breaker = self._breakers.get(key)
        if breaker is None:
            return CircuitState.CLOSED
        return breaker.state

    def get_stats(self, key: str | None = None) -> dict[str, Any]:
        """
        Health statistics for one key or for all breakers.

        Args:
            key: Optional key filter

        Returns:
            Statistics dictionary
        """
        if key is not None:
            breaker = self._breakers.get(key)
            if breaker is None:
                return {"key": key, "state": CircuitState.CLOSED.value, "failure_count": 0, "healthy": True}
            return self._service_health(breaker)

        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.key: self._service_health(breaker) for breaker in breakers}

    @staticmethod
    def _service_health(breaker: CircuitBreaker) -> dict[str, Any]:
        stats = breaker.to_dict()
        stats["healthy"] = breaker.state is CircuitState.CLOSED
        stats["next_recovery_time"] = breaker.next_recovery_time()
        return stats

    def reset(self, key: str) -> CircuitBreaker:
        """Replace the breaker for a key with a freshly created one."""
        self.discard(key)
        logger.info(f"Circuit breaker reset for {key}")
        return self.get_breaker(key)

    def discard(self, key: str) -> None:
        """Forget the breaker for a key."""
        with self._lock:
            self._breakers.pop(key, None)

    def reset_all(self) -> None:
        """Drop every breaker."""
        with self._lock:
            keys = list(self._breakers)
            self._breakers.clear()
        for key in keys:
            logger.info(f"Circuit breaker reset for {key}")

    def __contains__(self, key: object) -> bool:
        return key in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
