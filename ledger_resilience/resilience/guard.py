"""
Resilient Operation Guard

Composes the retry loop with per-operation circuit breakers.

Architecture:
    Caller -> ResilienceGuard -> Retry loop -> Circuit Breaker -> operation

Each attempt goes through the breaker keyed by the operation name. Once the
breaker opens, the next attempt is rejected with CircuitOpenError, which is
never retried, so the caller fails fast.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .circuit_breaker import CircuitBreakerManager
from .retry import RetryExecutor

logger = logging.getLogger(__name__)


class ResilienceGuard:
    """
    Retry and circuit breaker protection for arbitrary operations.

    Usage:
        >>> guard = ResilienceGuard(RetryExecutor(), CircuitBreakerManager())
        >>> receipt = await guard.run(mint_tokens, "token.mint", {"amount": 100})
    """

    def __init__(
        self,
        executor: RetryExecutor | None = None,
        breakers: CircuitBreakerManager | None = None,
    ):
        self.executor = executor if executor is not None else RetryExecutor()
        self.breakers = breakers if breakers is not None else CircuitBreakerManager()

    @classmethod
    def from_config(cls, config: Any) -> "ResilienceGuard":
        return cls(RetryExecutor.from_config(config), CircuitBreakerManager.from_config(config))

    async def run(
        self,
        operation: Callable[[], Any],
        operation_name: str,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Execute with retry around the breaker for ``operation_name``.

        Raises:
            OperationFailedError: kind CIRCUIT_OPEN when the breaker rejected,
                EXHAUSTED or PERMANENT otherwise
        """
        breaker = self.breakers.get_breaker(operation_name)

        async def guarded() -> Any:
            return await breaker.execute(operation, operation_name)

        return await self.executor.execute_with_retry(guarded, operation_name, context)

    def report(self) -> dict[str, Any]:
        """Error report plus breaker health, ready for a telemetry sink."""
        return {
            **self.executor.reporter.report().to_dict(),
            "circuit_breakers": self.breakers.get_stats(),
        }
