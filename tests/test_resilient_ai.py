"""
Unit tests for the resilient AI service decorator
"""

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock

from query_synthesis.exceptions import AIConnectionError, AIServiceError, EmptyAIResponseError
from query_synthesis.models import StreamingEvent
from query_synthesis.resilience import (
    BreakerState,
    ConsecutiveFailureCircuitBreaker,
    ResiliencePolicy,
    is_transient_ai_error,
)
from query_synthesis.resilience.resilient_ai import (
    FALLBACK_INSIGHT,
    FALLBACK_MARKER,
    FALLBACK_SQL,
    ResilientAIService,
)
from query_synthesis.services.interfaces import AIService
from query_synthesis.services.ollama_client import OllamaAIService


class ScriptedAIService(AIService):
    """AI service returning scripted results and streams"""

    def __init__(self, results=None, chunks=None, stream_error=None):
        self.generate = AsyncMock(side_effect=results or ["SELECT 1"])
        self.chunks = chunks or []
        self.stream_error = stream_error
        self.stream_calls = 0

    async def generate_sql(self, prompt):
        return await self.generate(prompt)

    async def generate_insight(self, question, rows):
        return await self.generate(question)

    async def generate_explanation(self, sql):
        return await self.generate(sql)

    async def _stream(self):
        self.stream_calls += 1
        for chunk in self.chunks:
            yield StreamingEvent(type="chunk", content=chunk)
        if self.stream_error is not None:
            raise self.stream_error
        yield StreamingEvent(type="complete", content="".join(self.chunks))

    def stream_sql(self, prompt):
        return self._stream()

    def stream_insight(self, question, rows):
        return self._stream()

    def stream_explanation(self, sql):
        return self._stream()


@pytest.fixture
def breaker(clock):
    return ConsecutiveFailureCircuitBreaker("ai", failure_threshold=5, clock=clock.monotonic)


@pytest.fixture
def sleep():
    return AsyncMock()


def make_service(inner, breaker, sleep):
    policy = ResiliencePolicy(
        "ai", breaker, retry_attempts=3, timeout_seconds=30,
        is_transient=is_transient_ai_error, sleep=sleep
    )
    return ResilientAIService(inner, policy)


async def collect(stream):
    return [event async for event in stream]


class TestGenerate:
    """Single-shot generation"""

    @pytest.mark.asyncio
    async def test_passthrough(self, breaker, sleep):
        service = make_service(ScriptedAIService(), breaker, sleep)

        assert await service.generate_sql("revenue by country") == "SELECT 1"

    @pytest.mark.asyncio
    async def test_empty_response_retried(self, breaker, sleep):
        inner = ScriptedAIService(results=[EmptyAIResponseError("empty"), "SELECT 2"])
        service = make_service(inner, breaker, sleep)

        assert await service.generate_sql("q") == "SELECT 2"
        assert inner.generate.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_permanent_failure_returns_marked_fallback(self, breaker, sleep):
        inner = ScriptedAIService(results=AIServiceError("model not found"))
        service = make_service(inner, breaker, sleep)

        result = await service.generate_sql("q")

        assert result == FALLBACK_SQL
        assert FALLBACK_MARKER in result
        assert inner.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_open_breaker_skips_dependency(self, breaker, sleep):
        for _ in range(5):
            breaker.record_failure()
        inner = ScriptedAIService()
        service = make_service(inner, breaker, sleep)

        assert await service.generate_insight("q", []) == FALLBACK_INSIGHT
        inner.generate.assert_not_awaited()


class TestStream:
    """Streaming generation"""

    @pytest.mark.asyncio
    async def test_stream_passthrough(self, breaker, sleep):
        service = make_service(ScriptedAIService(chunks=["SELECT ", "1"]), breaker, sleep)

        events = await collect(service.stream_sql("q"))

        assert [(e.type, e.content) for e in events] == [
            ("chunk", "SELECT "), ("chunk", "1"), ("complete", "SELECT 1")
        ]
        assert breaker.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_before_output_emits_error_then_fallback(self, breaker, sleep):
        inner = ScriptedAIService(stream_error=ConnectionError("reset"))
        service = make_service(inner, breaker, sleep)

        events = await collect(service.stream_sql("q"))

        assert [e.type for e in events] == ["error", "complete"]
        assert events[1].is_fallback is True
        assert events[1].content == FALLBACK_SQL
        assert inner.stream_calls == 1

    @pytest.mark.asyncio
    async def test_failure_after_output_ends_with_error(self, breaker, sleep):
        inner = ScriptedAIService(chunks=["SELECT "], stream_error=ConnectionError("reset"))
        service = make_service(inner, breaker, sleep)

        events = await collect(service.stream_sql("q"))

        assert [e.type for e in events] == ["chunk", "error"]

    @pytest.mark.asyncio
    async def test_open_breaker_stream(self, breaker, sleep):
        for _ in range(5):
            breaker.record_failure()
        inner = ScriptedAIService(chunks=["x"])
        service = make_service(inner, breaker, sleep)

        events = await collect(service.stream_explanation("SELECT 1"))

        assert [e.type for e in events] == ["error", "complete"]
        assert events[1].is_fallback is True
        assert inner.stream_calls == 0


def unreachable_client(error):
    llm = Mock()
    llm.ainvoke = AsyncMock(side_effect=error)
    client = Mock()
    client.get_llm.return_value = llm
    return client, llm


class TestUnreachableProvider:
    """Connection failures from the Ollama transport"""

    @pytest.mark.asyncio
    async def test_connection_refused_retried_and_opens_breaker(self, breaker, sleep):
        client, llm = unreachable_client(aiohttp.ClientConnectionError("Connection refused"))
        service = make_service(OllamaAIService(client=client), breaker, sleep)

        first = await service.generate_sql("total deposits")
        second = await service.generate_sql("total deposits")

        assert first == FALLBACK_SQL
        assert second == FALLBACK_SQL
        assert llm.ainvoke.await_count == 5
        assert breaker.state == BreakerState.OPEN

        third = await service.generate_sql("total deposits")

        assert third == FALLBACK_SQL
        assert llm.ainvoke.await_count == 5

    @pytest.mark.asyncio
    async def test_transport_errors_become_connection_errors(self):
        client, _ = unreachable_client(OSError("Network is unreachable"))

        with pytest.raises(AIConnectionError):
            await OllamaAIService(client=client).generate_sql("total deposits")

    @pytest.mark.asyncio
    async def test_provider_rejection_is_not_retried(self, breaker, sleep):
        client, llm = unreachable_client(ValueError("model 'llama' not found"))
        service = make_service(OllamaAIService(client=client), breaker, sleep)

        assert await service.generate_sql("total deposits") == FALLBACK_SQL
        assert llm.ainvoke.await_count == 1
        assert breaker.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_stream_connection_failure_counts_against_breaker(self, clock, sleep):
        breaker = ConsecutiveFailureCircuitBreaker("ai", failure_threshold=1, clock=clock.monotonic)

        async def refused(messages):
            raise aiohttp.ClientConnectionError("Connection refused")
            yield

        llm = Mock()
        llm.astream = refused
        client = Mock()
        client.get_llm.return_value = llm
        service = make_service(OllamaAIService(client=client), breaker, sleep)

        events = await collect(service.stream_sql("total deposits"))

        assert [event.type for event in events] == ["error", "complete"]
        assert events[-1].is_fallback is True
        assert breaker.state == BreakerState.OPEN


if __name__ == "__main__":
    pytest.main([__file__])
