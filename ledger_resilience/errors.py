"""
Ledger Resilience - Core Error Types

Defines the exception hierarchy used by the resilience layer.
All exceptions raised by this package inherit from ResilienceError and carry
an explicit ErrorKind so callers can branch without string matching.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """
    Discriminant for failures flowing through the resilience layer.

    TRANSIENT and PERMANENT describe a single failed attempt.
    CIRCUIT_OPEN and EXHAUSTED are produced by the layer itself.
    """

    TRANSIENT = "TRANSIENT"
    PERMANENT = "PERMANENT"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    EXHAUSTED = "EXHAUSTED"


class ResilienceError(Exception):
    """Base exception for all Ledger Resilience errors."""

    kind: ErrorKind | None = None

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: str | None = None,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logs and reports."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value if self.kind else None,
            "status_code": self.status_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ResilienceError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, kind=ErrorKind.PERMANENT)


class OperationError(ResilienceError):
    """
    Failure raised by a wrapped network operation.

    Carries the network status code (e.g. "BUSY") when the service returned
    one. The kind stays unset; the classifier decides it.
    """

    def __init__(
        self,
        message: str,
        status_code: str | None = None,
        code: Any = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details, status_code=status_code)
        self.code = code


class AttemptTimeoutError(OperationError):
    """Raised when a single attempt exceeds its deadline."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, operation_name: str, attempt: int, timeout_ms: int):
        message = f"{operation_name} attempt {attempt} timeout after {timeout_ms}ms"
        super().__init__(
            message,
            status_code="ATTEMPT_TIMEOUT",
            details={"operation": operation_name, "attempt": attempt, "timeout_ms": timeout_ms},
        )
        self.operation_name = operation_name
        self.attempt = attempt
        self.timeout_ms = timeout_ms


class CircuitOpenError(ResilienceError):
    """Raised when a circuit breaker rejects a call without invoking it."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        key: str,
        state: str,
        failure_count: int | None = None,
        reset_timeout_ms: int | None = None,
    ):
        message = f"Circuit breaker is {state.upper()} for {key}. Try again later."
        details: dict[str, Any] = {"key": key, "circuit_state": state}
        if failure_count is not None:
            details["failure_count"] = failure_count
        if reset_timeout_ms is not None:
            details["reset_timeout_ms"] = reset_timeout_ms
        super().__init__(message, details, status_code="CIRCUIT_OPEN")

        # Store as instance attributes for access in exception handlers
        self.key = key
        self.state = state
        self.failure_count = failure_count
        self.reset_timeout_ms = reset_timeout_ms


class OperationFailedError(ResilienceError):
    """
    Aggregated failure raised by the retry executor.

    Embeds the operation name, the number of attempts made and the last
    underlying error. The kind tells why the loop stopped.
    """

    def __init__(
        self,
        operation_name: str,
        attempts: int,
        last_error: BaseException,
        kind: ErrorKind,
    ):
        last_message = error_message(last_error)
        message = f"{operation_name} failed after {attempts} attempts: {last_message}"
        details = {
            "operation": operation_name,
            "attempts": attempts,
            "last_error": last_message,
            "last_error_type": type(last_error).__name__,
            "last_status_code": error_status(last_error),
        }
        super().__init__(message, details, status_code=error_status(last_error), kind=kind)
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error


def error_status(error: BaseException) -> str | None:
    """
    Extract the network status code carried by an error, if any.

    Looks at ``status_code`` first, then ``status`` (the attribute name
    used by most ledger SDK exceptions).
    """
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if value is not None and value != "":
            return str(value)
    return None


def error_message(error: BaseException) -> str:
    """Human-readable message for any exception."""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or type(error).__name__
