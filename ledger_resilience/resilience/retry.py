"""
Ledger Resilience - Retry Logic with Exponential Backoff

Drives the attempt loop for a single fallible network operation:
- Bounded attempts (max_retries + 1)
- Transient/permanent classification of every failure
- Exponential backoff with jitter between attempts
- Optional per-attempt deadline
- Failure history and counts recorded in an ErrorReporter
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import (
    AttemptTimeoutError,
    ErrorKind,
    OperationFailedError,
    error_message,
    error_status,
)
from .backoff import DEFAULT_MAX_DELAY_MS, DelayCalculator
from .classifier import ErrorClassifier
from .reporter import AttemptRecord, ErrorReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry behavior of one executor.

    Attributes:
        max_retries: Retries after the first attempt (default: 3)
        base_delay_ms: Initial backoff delay in milliseconds (default: 1000)
        max_delay_ms: Backoff cap in milliseconds (default: 30000)
        attempt_timeout_ms: Deadline for a single attempt, None for no deadline
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    attempt_timeout_ms: int | None = None

    def __post_init__(self) -> None:
        """Validate policy."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.attempt_timeout_ms is not None and self.attempt_timeout_ms <= 0:
            raise ValueError("attempt_timeout_ms must be positive")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class RetryExecutor:
    """
    Executes operations with retry, backoff and failure recording.

    Usage:
        >>> executor = RetryExecutor(RetryPolicy(max_retries=3))
        >>> receipt = await executor.execute_with_retry(
        ...     submit_message,
        ...     "topic.submit",
        ...     context={"topic_id": "0.0.4821"},
        ... )
        >>> executor.reporter.report().to_dict()

    Each executor owns its ErrorReporter unless one is passed in, so two
    executors only share history when configured to.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        classifier: ErrorClassifier | None = None,
        delay_calculator: DelayCalculator | None = None,
        reporter: ErrorReporter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize retry executor.

        Args:
            policy: Retry policy (uses defaults if None)
            classifier: Transient/permanent classifier
            delay_calculator: Backoff calculator (inject for deterministic jitter)
            reporter: Failure sink; a private one is created if None
            sleep: Awaitable sleep taking seconds
        """
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self.delay_calculator = delay_calculator or DelayCalculator()
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "RetryExecutor":
        """Build an executor from a loaded ResilienceConfig."""
        kwargs.setdefault("reporter", ErrorReporter(max_history=config.reporter.max_history))
        return cls(config.retry.to_policy(), **kwargs)

    async def execute_with_retry(
        self,
        operation: Callable[[], Any],
        operation_name: str,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Execute an operation with retry logic.

        Args:
            operation: Zero-argument callable, sync or async
            operation_name: Label used for logging and history
            context: Extra fields attached to records and logs, never interpreted

        Returns:
            Result of the first successful attempt

        Raises:
            OperationFailedError: On a permanent error, a circuit rejection,
                or when all attempts are exhausted
            ValueError: If operation_name is empty
        """
        if not operation_name:
            raise ValueError("operation_name must be a non-empty string")

        context = context or {}
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            logger.debug(
                f"{operation_name} (attempt {attempt}/{max_attempts})",
                extra={"operation": operation_name, "attempt": attempt, "context": dict(context)},
            )

            try:
                result = await self._attempt(operation, operation_name, attempt)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = self.classifier.classify(e)
                self._record_failure(operation_name, attempt, e, kind, context)

                retryable = kind is ErrorKind.TRANSIENT
                if not retryable or attempt >= max_attempts:
                    raise self._give_up(operation_name, attempt, e, kind) from e

                delay_ms = self.delay_calculator.compute_delay(
                    attempt - 1,
                    self.policy.base_delay_ms,
                    self.policy.max_delay_ms,
                )
                logger.warning(
                    f"Retry attempt {attempt + 1}/{max_attempts} for {operation_name} after {delay_ms:.0f}ms",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_ms": round(delay_ms, 2),
                        "error": error_message(e),
                        "status_code": error_status(e),
                        "context": dict(context),
                    },
                )
                await self._sleep(delay_ms / 1000.0)
                continue

            if attempt > 1:
                self.reporter.record_success(operation_name, attempt)
                logger.info(
                    f"{operation_name} succeeded after {attempt} attempts",
                    extra={"operation": operation_name, "attempt": attempt},
                )
            return result

        # range() always runs at least once and every branch returns or raises
        raise RuntimeError("Retry loop exited unexpectedly")

    async def _attempt(self, operation: Callable[[], Any], operation_name: str, attempt: int) -> Any:
        """Run one attempt, enforcing the per-attempt deadline on awaitables."""
        result = operation()
        if not inspect.isawaitable(result):
            return result

        timeout_ms = self.policy.attempt_timeout_ms
        if timeout_ms is None:
            return await result

        deadline = asyncio.timeout(timeout_ms / 1000.0)
        try:
            async with deadline:
                return await result
        except TimeoutError as e:
            # A TimeoutError raised by the operation itself passes through unchanged
            if not deadline.expired():
                raise
            raise AttemptTimeoutError(operation_name, attempt, timeout_ms) from e

    def _record_failure(
        self,
        operation_name: str,
        attempt: int,
        error: Exception,
        kind: ErrorKind,
        context: Mapping[str, Any],
    ) -> None:
        record = AttemptRecord(
            operation_name=operation_name,
            attempt_number=attempt,
            error_kind=kind,
            error_code=error_status(error),
            message=error_message(error),
            context=context,
        )
        self.reporter.record(record)

        logger.warning(
            f"{operation_name} failed (attempt {attempt}): {record.message}",
            extra={
                "operation": operation_name,
                "attempt": attempt,
                "error_kind": kind.value,
                "status_code": record.error_code,
                "error_type": type(error).__name__,
                "context": dict(context),
            },
        )

    def _give_up(self, operation_name: str, attempts: int, error: Exception, kind: ErrorKind) -> OperationFailedError:
        if kind is ErrorKind.TRANSIENT:
            final_kind = ErrorKind.EXHAUSTED
        elif kind in (ErrorKind.CIRCUIT_OPEN, ErrorKind.EXHAUSTED):
            final_kind = kind
        else:
            final_kind = ErrorKind.PERMANENT

        failure = OperationFailedError(operation_name, attempts, error, final_kind)
        logger.error(
            failure.message,
            extra={
                "operation": operation_name,
                "attempts": attempts,
                "error_kind": final_kind.value,
                "status_code": error_status(error),
                "error_type": type(error).__name__,
            },
        )
        return failure
