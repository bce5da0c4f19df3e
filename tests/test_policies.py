"""
Unit tests for retry/breaker/deadline composition
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from query_synthesis.exceptions import (
    AIConnectionError,
    AIServiceError,
    CircuitBreakerOpenError,
    EmptyAIResponseError,
    QueryExecutionError,
)
from query_synthesis.resilience import (
    ConsecutiveFailureCircuitBreaker,
    ResiliencePolicy,
    is_transient_ai_error,
    is_transient_db_error,
)


def deadlock():
    return QueryExecutionError("Transaction was deadlocked", error_code=1205)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def policy(clock, sleep):
    breaker = ConsecutiveFailureCircuitBreaker("database", failure_threshold=10, clock=clock.monotonic)
    return ResiliencePolicy("database", breaker, retry_attempts=3, backoff_multiplier=2, sleep=sleep)


class TestResiliencePolicy:
    """Retry behavior"""

    @pytest.mark.asyncio
    async def test_transient_errors_retried_with_exponential_backoff(self, policy, sleep):
        func = AsyncMock(side_effect=[deadlock(), deadlock(), "ok"])

        result = await policy.execute(func, "execute")

        assert result == "ok"
        assert func.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_non_transient_error_not_retried(self, policy, sleep):
        func = AsyncMock(side_effect=ValueError("syntax error"))

        with pytest.raises(ValueError):
            await policy.execute(func)

        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, policy):
        func = AsyncMock(side_effect=ConnectionError("reset"))

        with pytest.raises(ConnectionError):
            await policy.execute(func)

        assert func.await_count == 4

    @pytest.mark.asyncio
    async def test_open_breaker_stops_retries(self, clock, sleep):
        breaker = ConsecutiveFailureCircuitBreaker("database", failure_threshold=2, clock=clock.monotonic)
        policy = ResiliencePolicy("database", breaker, retry_attempts=3, sleep=sleep)
        func = AsyncMock(side_effect=ConnectionError("reset"))

        with pytest.raises(CircuitBreakerOpenError):
            await policy.execute(func)

        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_deadline_shared_by_attempts(self, clock, sleep):
        breaker = ConsecutiveFailureCircuitBreaker("ai", clock=clock.monotonic)
        policy = ResiliencePolicy("ai", breaker, retry_attempts=3, timeout_seconds=0.05, sleep=sleep)
        calls = []

        async def hang():
            calls.append(1)
            await asyncio.sleep(1)

        with pytest.raises(asyncio.TimeoutError):
            await policy.execute(hang)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_best_effort_returns_default(self, policy):
        func = AsyncMock(side_effect=ConnectionError("reset"))

        result = await policy.with_retries(1).execute_best_effort(func, default=[])

        assert result == []
        assert func.await_count == 2

    def test_with_retries_shares_breaker(self, policy):
        lighter = policy.with_retries(1)

        assert lighter.breaker is policy.breaker
        assert lighter.retry_attempts == 1
        assert policy.retry_attempts == 3

    def test_with_retries_can_isolate_breaker(self, policy, clock):
        side = ConsecutiveFailureCircuitBreaker("database.side_operations", failure_threshold=1, clock=clock.monotonic)

        lighter = policy.with_retries(1, breaker=side)

        assert lighter.breaker is side
        assert lighter.name == "database.side_operations"
        assert lighter.is_transient is policy.is_transient
        assert policy.breaker is not side


class TestTransientClassification:
    """Which errors are retried"""

    @pytest.mark.parametrize("error,expected", [
        (QueryExecutionError("timeout", error_code=2), True),
        (QueryExecutionError("deadlock", error_code=1205), True),
        (QueryExecutionError("low memory", error_code=8645), True),
        (QueryExecutionError("gone", error_name="CONNECTION_ERROR"), True),
        (QueryExecutionError("slow", error_name="EXCEEDED_TIME_LIMIT"), True),
        (QueryExecutionError("bad column", error_code=207), False),
        (asyncio.TimeoutError(), True),
        (ConnectionError("reset"), True),
        (CircuitBreakerOpenError("database"), False),
        (ValueError("nope"), False),
    ])
    def test_db_errors(self, error, expected):
        assert is_transient_db_error(error) is expected

    def test_ai_errors(self):
        assert is_transient_ai_error(EmptyAIResponseError("empty")) is True
        assert is_transient_ai_error(AIServiceError("model not found")) is False
        assert is_transient_ai_error(asyncio.TimeoutError()) is True
        assert is_transient_ai_error(AIConnectionError("refused")) is True
        assert is_transient_ai_error(CircuitBreakerOpenError("ai")) is False


if __name__ == "__main__":
    pytest.main([__file__])
