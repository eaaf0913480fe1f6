"""
Ledger Resilience - Health Checks

Runs a battery of named connectivity/capability probes and aggregates them
into a score. A failing probe lowers the score; it never aborts the check.
"""

import asyncio
import inspect
import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import error_message
from .retry import RetryExecutor

logger = logging.getLogger(__name__)

Probe = Callable[[], Any]


@dataclass
class HealthCheckResult:
    checks: dict[str, bool]
    score: int
    healthy: bool
    error: str | None = None
    probe_errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "score": self.score,
            "total": len(self.checks),
            "checks": dict(self.checks),
            "error": self.error,
            "probe_errors": dict(self.probe_errors),
        }


class HealthChecker:
    """
    Aggregates probe results into a HealthCheckResult.

    Args:
        executor: Optional RetryExecutor; when set every probe runs under its retry loop
        min_healthy: Passing probes required for ``healthy``; defaults to ceil(N / 2)
    """

    def __init__(self, executor: RetryExecutor | None = None, min_healthy: int | None = None):
        if min_healthy is not None and min_healthy < 0:
            raise ValueError("min_healthy must be non-negative")
        self.executor = executor
        self.min_healthy = min_healthy

    @classmethod
    def from_config(cls, config: Any, executor: RetryExecutor | None = None) -> "HealthChecker":
        return cls(executor=executor, min_healthy=config.health.min_healthy)

    async def perform_health_check(
        self,
        probes: Mapping[str, Probe] | Iterable[tuple[str, Probe]],
    ) -> HealthCheckResult:
        """
        Run every probe in order and score the results.

        Never raises for probe or aggregation failures; task cancellation
        still propagates.
        """
        checks: dict[str, bool] = {}
        probe_errors: dict[str, str] = {}

        try:
            items = list(probes.items()) if isinstance(probes, Mapping) else list(probes)
            if not items:
                return HealthCheckResult(checks={}, score=0, healthy=False, error="no health probes configured")

            logger.info("Performing health check", extra={"probes": [name for name, _ in items]})

            for name, probe in items:
                try:
                    checks[name] = await self._run_probe(name, probe)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    checks[name] = False
                    probe_errors[name] = error_message(e)
                    logger.warning(
                        f"Health probe '{name}' failed: {probe_errors[name]}",
                        extra={"probe": name, "error_type": type(e).__name__},
                    )

            score = sum(1 for passed in checks.values() if passed)
            required = self.min_healthy if self.min_healthy is not None else math.ceil(len(checks) / 2)
            result = HealthCheckResult(
                checks=checks,
                score=score,
                healthy=score >= required,
                probe_errors=probe_errors,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return HealthCheckResult(
                checks=checks,
                score=0,
                healthy=False,
                error=error_message(e),
                probe_errors=probe_errors,
            )

        logger.info(
            f"Health check score: {result.score}/{len(checks)}",
            extra={"score": result.score, "healthy": result.healthy, "checks": checks},
        )
        return result

    async def _run_probe(self, name: str, probe: Probe) -> bool:
        if self.executor is not None:
            return bool(await self.executor.execute_with_retry(probe, f"health_check.{name}"))

        outcome = probe()
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return bool(outcome)
