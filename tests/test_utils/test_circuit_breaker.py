"""
Tests for the gateway circuit breaker.

Tests cover:
- State transitions (CLOSED, OPEN, HALF_OPEN)
- Failure threshold and sliding window
- Reset timeout and recovery
- Disabled breaker passthrough
"""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from permastore.errors.storage import CircuitBreakerOpenError
from permastore.storage.types import CircuitBreakerConfig
from permastore.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerState,
    CircuitState,
)


@pytest.fixture
def breaker(circuit_breaker_config: CircuitBreakerConfig) -> CircuitBreaker:
    return CircuitBreaker(circuit_breaker_config, name="node1")


async def fail() -> None:
    raise ValueError("boom")


class TestInitialState:
    def test_starts_closed(self, breaker: CircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_closed
        assert not breaker.is_open
        assert breaker.failure_count == 0

    def test_state_defaults(self) -> None:
        state = CircuitBreakerState()

        assert state.state == CircuitState.CLOSED
        assert state.failure_times == []


class TestTransitions:
    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker: CircuitBreaker) -> None:
        for _ in range(2):
            await breaker.record_failure()
        assert breaker.is_closed

        await breaker.record_failure()

        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self, breaker: CircuitBreaker) -> None:
        for _ in range(3):
            await breaker.record_failure()
        fn = AsyncMock(return_value="data")

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(fn)

        fn.assert_not_awaited()
        assert exc_info.value.code == "CIRCUIT_BREAKER_OPEN"
        assert exc_info.value.details["reset_at"] > 0

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self, breaker: CircuitBreaker) -> None:
        for _ in range(3):
            await breaker.record_failure()

        later = time.time() + 2
        with patch("permastore.utils.circuit_breaker.time.time", return_value=later):
            result = await breaker.execute(AsyncMock(return_value="ok"))

        assert result == "ok"
        assert breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_recovers_after_success_threshold(self, breaker: CircuitBreaker) -> None:
        breaker._state.state = CircuitState.HALF_OPEN

        await breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.record_success()

        assert breaker.is_closed
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failure_in_half_open_reopens(self, breaker: CircuitBreaker) -> None:
        breaker._state.state = CircuitState.HALF_OPEN

        await breaker.record_failure()

        assert breaker.is_open


class TestExecute:
    @pytest.mark.asyncio
    async def test_failure_recorded_and_reraised(self, breaker: CircuitBreaker) -> None:
        with pytest.raises(ValueError):
            await breaker.execute(fail)

        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_disabled_passes_through(self) -> None:
        breaker = CircuitBreaker(CircuitBreakerConfig(enabled=False, failure_threshold=1))

        for _ in range(3):
            with pytest.raises(ValueError):
                await breaker.execute(fail)

        assert breaker.is_closed
        assert await breaker.execute(AsyncMock(return_value=1)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_failures_counted(self, breaker: CircuitBreaker) -> None:
        await asyncio.gather(
            *(breaker.execute(fail) for _ in range(5)), return_exceptions=True
        )

        assert breaker.is_open


class TestWindow:
    @pytest.mark.asyncio
    async def test_old_failures_expire(self, breaker: CircuitBreaker) -> None:
        await breaker.record_failure()
        await breaker.record_failure()
        # Push both failures outside the 5s window
        breaker._state.failure_times = [t - 10_000 for t in breaker._state.failure_times]

        await breaker.record_failure()

        assert breaker.failure_count == 1
        assert breaker.is_closed


class TestStats:
    @pytest.mark.asyncio
    async def test_get_stats_and_reset(self, breaker: CircuitBreaker) -> None:
        await breaker.record_failure()

        stats = breaker.get_stats()
        assert stats["name"] == "node1"
        assert stats["state"] == "closed"
        assert stats["failures"] == 1

        breaker.reset()
        assert breaker.get_stats()["failures"] == 0
