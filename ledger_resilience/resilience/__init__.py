"""
Ledger Resilience - Resilience Module

Provides resilience patterns for fallible network operations:
- Transient/permanent error classification
- Exponential backoff with jitter
- Retry loop with failure history
- Circuit breaker per operation key
- Health check aggregation
"""

from .backoff import DelayCalculator, exponential_backoff
from .circuit_breaker import CircuitBreaker, CircuitBreakerManager, CircuitSnapshot, CircuitState
from .classifier import ErrorAdvice, ErrorClassifier, explain_error, is_retryable
from .guard import ResilienceGuard
from .health import HealthChecker, HealthCheckResult
from .reporter import AttemptRecord, ErrorReport, ErrorReporter
from .retry import RetryExecutor, RetryPolicy

__all__ = [
    # Classification
    "ErrorClassifier",
    "ErrorAdvice",
    "is_retryable",
    "explain_error",
    # Backoff
    "DelayCalculator",
    "exponential_backoff",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerManager",
    "CircuitSnapshot",
    "CircuitState",
    # Retry logic
    "RetryExecutor",
    "RetryPolicy",
    # Reporting
    "AttemptRecord",
    "ErrorReport",
    "ErrorReporter",
    # Health
    "HealthChecker",
    "HealthCheckResult",
    # Composition
    "ResilienceGuard",
]
