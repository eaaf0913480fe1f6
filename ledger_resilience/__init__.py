"""
Ledger Resilience — Retry, Circuit Breaking and Failure Reporting

Resilience layer for fallible calls against an external ledger network:
bounded retries with exponential backoff and jitter, per-operation circuit
breakers, health checks, and structured failure reports.
"""

__version__ = "1.0.0"

from .errors import (
    AttemptTimeoutError,
    CircuitOpenError,
    ConfigurationError,
    ErrorKind,
    OperationError,
    OperationFailedError,
    ResilienceError,
)
from .resilience import (
    CircuitBreaker,
    CircuitBreakerManager,
    CircuitState,
    ErrorClassifier,
    ErrorReporter,
    HealthChecker,
    ResilienceGuard,
    RetryExecutor,
    RetryPolicy,
)

__all__ = [
    "AttemptTimeoutError",
    "CircuitBreaker",
    "CircuitBreakerManager",
    "CircuitOpenError",
    "CircuitState",
    "ConfigurationError",
    "ErrorClassifier",
    "ErrorKind",
    "ErrorReporter",
    "HealthChecker",
    "OperationError",
    "OperationFailedError",
    "ResilienceError",
    "ResilienceGuard",
    "RetryExecutor",
    "RetryPolicy",
]
