"""
Ledger Resilience - Backoff Delays

Exponential backoff with additive jitter, capped at a maximum delay.
All values are in milliseconds.
"""

import random
from collections.abc import Callable

# Jitter is drawn uniformly from [0, JITTER_RANGE_MS)
JITTER_RANGE_MS = 1000.0
DEFAULT_MAX_DELAY_MS = 30000


def exponential_backoff(
    attempt_index: int,
    base_delay_ms: float,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    jitter_source: Callable[[], float] = random.random,
) -> float:
    """
    Calculate the delay before the next attempt.

    Args:
        attempt_index: Zero-based index (0 is the delay before the second attempt)
        base_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay cap
        jitter_source: Callable returning a float in [0, 1)

    Returns:
        Delay in milliseconds

    Example:
        >>> exponential_backoff(0, 1000)  # 1000 <= d < 2000
        >>> exponential_backoff(2, 1000)  # 4000 <= d < 5000
    """
    if attempt_index < 0:
        raise ValueError("attempt_index must be non-negative")

    jitter = jitter_source() * JITTER_RANGE_MS
    return min(base_delay_ms * (2**attempt_index) + jitter, max_delay_ms)


class DelayCalculator:
    """
    Backoff calculator with a replaceable random source.

    Tests pass a deterministic ``jitter_source`` (e.g. ``lambda: 0.0``).
    """

    def __init__(self, jitter_source: Callable[[], float] | None = None):
        self._jitter_source = jitter_source or random.random

    def compute_delay(
        self,
        attempt_index: int,
        base_delay_ms: float,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    ) -> float:
        """Delay in milliseconds before attempt ``attempt_index + 2``."""
        return exponential_backoff(
            attempt_index,
            base_delay_ms,
            max_delay_ms,
            jitter_source=self._jitter_source,
        )
