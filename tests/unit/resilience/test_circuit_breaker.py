"""Tests for the circuit breaker state machine and its manager."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ledger_resilience.errors import CircuitOpenError, ErrorKind
from ledger_resilience.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerManager,
    CircuitSnapshot,
    CircuitState,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _fail_n_times(cb: CircuitBreaker, n: int, exc: Exception | None = None) -> None:
    """Drive *n* failures through the circuit breaker."""
    exc = exc or RuntimeError("boom")
    for _ in range(n):
        with pytest.raises(type(exc)):
            await cb.execute(AsyncMock(side_effect=exc))


async def _open(cb: CircuitBreaker) -> None:
    await _fail_n_times(cb, cb.failure_threshold)
    assert cb.state is CircuitState.OPEN


# ---------------------------------------------------------------------------
# CLOSED
# ---------------------------------------------------------------------------


class TestClosedState:
    def test_initial_state(self, fake_clock) -> None:
        cb = CircuitBreaker("token.mint", clock=fake_clock)
        assert cb.get_state() == CircuitSnapshot(CircuitState.CLOSED, 0, None)
        assert cb.failure_threshold == 5
        assert cb.reset_timeout_ms == 60000

    async def test_async_and_sync_operations_pass_through(self, fake_clock) -> None:
        cb = CircuitBreaker("query", clock=fake_clock)
        assert await cb.execute(AsyncMock(return_value=42)) == 42
        assert await cb.execute(lambda: "ok") == "ok"

    async def test_opens_exactly_on_threshold(self, fake_clock) -> None:
        cb = CircuitBreaker("deploy", failure_threshold=5, clock=fake_clock)

        await _fail_n_times(cb, 4)
        assert cb.state is CircuitState.CLOSED
        assert cb.failure_count == 4

        await _fail_n_times(cb, 1)
        assert cb.state is CircuitState.OPEN
        assert cb.failure_count == 5
        assert cb.last_failure_time == fake_clock.now

    async def test_success_in_closed_keeps_failure_count(self, fake_clock) -> None:
        cb = CircuitBreaker("submit", failure_threshold=3, clock=fake_clock)
        await _fail_n_times(cb, 2)
        await cb.execute(AsyncMock(return_value=None))
        assert cb.failure_count == 2
        assert cb.state is CircuitState.CLOSED

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreaker("x", failure_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreaker("x", reset_timeout_ms=-1)


# ---------------------------------------------------------------------------
# OPEN
# ---------------------------------------------------------------------------


class TestOpenState:
    async def test_rejects_without_invoking(self, fake_clock) -> None:
        cb = CircuitBreaker("topic.submit", failure_threshold=2, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)

        operation = MagicMock(return_value="never")
        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.execute(operation)

        operation.assert_not_called()
        assert exc_info.value.kind is ErrorKind.CIRCUIT_OPEN
        assert exc_info.value.key == "topic.submit"
        assert exc_info.value.state == "open"
        assert "OPEN" in str(exc_info.value)

    async def test_still_open_at_exact_timeout(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)

        fake_clock.advance_ms(1000)
        with pytest.raises(CircuitOpenError):
            await cb.execute(AsyncMock(return_value=1))

    async def test_admits_trial_after_timeout(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)

        fake_clock.advance_ms(1001)
        operation = AsyncMock(return_value="recovered")
        assert await cb.execute(operation) == "recovered"
        operation.assert_awaited_once()
        assert cb.state is CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_next_recovery_time(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=2000, clock=fake_clock)
        assert cb.next_recovery_time() is None
        asyncio.run(_open(cb))
        assert cb.next_recovery_time() == pytest.approx(fake_clock.now + 2.0)


# ---------------------------------------------------------------------------
# HALF_OPEN
# ---------------------------------------------------------------------------


class TestHalfOpenState:
    async def test_failed_trial_reopens_and_restarts_timer(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=3, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)
        opened_at = cb.last_failure_time

        fake_clock.advance_ms(1500)
        await _fail_n_times(cb, 1)

        assert cb.state is CircuitState.OPEN
        assert cb.failure_count == 1
        assert cb.last_failure_time > opened_at

        # Timer restarted: 600ms after the failed trial is still too early
        fake_clock.advance_ms(600)
        with pytest.raises(CircuitOpenError):
            await cb.execute(AsyncMock(return_value=1))

        fake_clock.advance_ms(500)
        assert await cb.execute(AsyncMock(return_value=1)) == 1
        assert cb.state is CircuitState.CLOSED

    async def test_only_one_concurrent_trial(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)
        fake_clock.advance_ms(2000)

        release = asyncio.Event()
        calls = 0

        async def slow_trial() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "ok"

        trial = asyncio.create_task(cb.execute(slow_trial))
        await asyncio.sleep(0)
        assert cb.state is CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.execute(slow_trial)
        assert exc_info.value.state == "half_open"

        release.set()
        assert await trial == "ok"
        assert calls == 1
        assert cb.state is CircuitState.CLOSED

    async def test_cancelled_trial_releases_slot(self, fake_clock) -> None:
        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)
        fake_clock.advance_ms(2000)

        trial = asyncio.create_task(cb.execute(lambda: asyncio.sleep(3600)))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert cb.state is CircuitState.HALF_OPEN
        assert cb.failure_count == 0
        assert await cb.execute(AsyncMock(return_value="next")) == "next"
        assert cb.state is CircuitState.CLOSED

    async def test_interrupted_trial_releases_slot(self, fake_clock) -> None:
        class Interrupted(BaseException):
            pass

        cb = CircuitBreaker("q", failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        await _open(cb)
        fake_clock.advance_ms(2000)

        with pytest.raises(Interrupted):
            await cb.execute(MagicMock(side_effect=Interrupted()))

        assert cb.state is CircuitState.HALF_OPEN
        assert await cb.execute(AsyncMock(return_value="next")) == "next"
        assert cb.state is CircuitState.CLOSED


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class TestCircuitBreakerManager:
    def test_get_breaker_is_cached_per_key(self, fake_clock) -> None:
        manager = CircuitBreakerManager(failure_threshold=2, reset_timeout_ms=500, clock=fake_clock)
        first = manager.get_breaker("a")
        assert manager.get_breaker("a") is first
        assert manager.get_breaker("b") is not first
        assert first.failure_threshold == 2
        assert first.reset_timeout_ms == 500
        assert len(manager) == 2
        assert "a" in manager

    async def test_keys_are_independent(self, fake_clock) -> None:
        manager = CircuitBreakerManager(failure_threshold=1, clock=fake_clock)
        with pytest.raises(RuntimeError):
            await manager.call("a", AsyncMock(side_effect=RuntimeError("boom")))

        assert manager.get_state("a") is CircuitState.OPEN
        assert manager.get_state("b") is CircuitState.CLOSED
        assert await manager.call("b", AsyncMock(return_value="fine")) == "fine"

    async def test_get_stats(self, fake_clock) -> None:
        manager = CircuitBreakerManager(failure_threshold=1, reset_timeout_ms=1000, clock=fake_clock)
        with pytest.raises(RuntimeError):
            await manager.call("a", AsyncMock(side_effect=RuntimeError("boom")))
        await manager.call("b", AsyncMock(return_value=1))

        stats = manager.get_stats()
        assert stats["a"]["state"] == "open"
        assert stats["a"]["healthy"] is False
        assert stats["a"]["next_recovery_time"] == pytest.approx(fake_clock.now + 1.0)
        assert stats["b"]["healthy"] is True

        assert manager.get_stats("unknown") == {"key": "unknown", "state": "closed", "failure_count": 0, "healthy": True}

    async def test_reset_recreates_breaker(self, fake_clock) -> None:
        manager = CircuitBreakerManager(failure_threshold=1, clock=fake_clock)
        with pytest.raises(RuntimeError):
            await manager.call("a", AsyncMock(side_effect=RuntimeError("boom")))
        old = manager.get_breaker("a")

        fresh = manager.reset("a")
        assert fresh is not old
        assert fresh.get_state() == CircuitSnapshot(CircuitState.CLOSED, 0, None)

    def test_discard_and_reset_all(self) -> None:
        manager = CircuitBreakerManager()
        manager.get_breaker("a")
        manager.get_breaker("b")

        manager.discard("a")
        assert "a" not in manager
        manager.discard("missing")

        manager.reset_all()
        assert len(manager) == 0
