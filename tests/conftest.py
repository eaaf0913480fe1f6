"""
Ledger Resilience — Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
Sleep, jitter and clocks are faked so no test waits on real time.
"""

import os
from collections.abc import Generator

import pytest

from ledger_resilience.config import loader
from ledger_resilience.resilience import DelayCalculator, ErrorReporter, RetryExecutor, RetryPolicy

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def zero_jitter() -> DelayCalculator:
    """Delay calculator with no jitter."""
    return DelayCalculator(jitter_source=lambda: 0.0)


@pytest.fixture
def make_executor(recording_sleep: RecordingSleep, zero_jitter: DelayCalculator):
    """Factory for executors that never really sleep."""

    def _make(
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30000,
        attempt_timeout_ms: int | None = None,
        reporter: ErrorReporter | None = None,
    ) -> RetryExecutor:
        policy = RetryPolicy(
            max_retries=max_retries,
            base_delay_ms=base_delay_ms,
            max_delay_ms=max_delay_ms,
            attempt_timeout_ms=attempt_timeout_ms,
        )
        return RetryExecutor(policy, delay_calculator=zero_jitter, reporter=reporter, sleep=recording_sleep)

    return _make


@pytest.fixture(autouse=True)
def reset_config_cache() -> Generator[None, None, None]:
    """Reset the cached configuration after each test to prevent state leakage."""
    yield
    loader._config_instance = None
