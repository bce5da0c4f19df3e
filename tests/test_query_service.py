"""
Unit tests for the query service
"""

import json

import pytest
from unittest.mock import AsyncMock, Mock

from query_synthesis.cache import QueryCache, RedisSimilarityIndex, hash_query
from query_synthesis.models import EnhancedQueryResult, QueryFeedback, QueryRequest
from query_synthesis.services.query_service import SqlQueryService


GENERATED_SQL = (
    "SELECT CountryName AS CountryName, SUM(Amount) AS SUMAmount\n"
    "FROM Transactions tr\n"
    "INNER JOIN Countries co ON tr.CountryID = co.CountryID\n"
    "GROUP BY CountryName\n"
    "ORDER BY SUMAmount DESC"
)


def synthesis_result(sql=GENERATED_SQL, success=True, **kwargs):
    return EnhancedQueryResult(
        success=success,
        trace_id="t1",
        generated_sql=sql if success else "",
        overall_confidence=0.85 if success else 0.0,
        processing_metadata={"tables": ["Transactions", "Countries"]},
        **kwargs
    )


@pytest.fixture
def orchestrator():
    orchestrator = Mock()
    orchestrator.synthesize = AsyncMock(return_value=synthesis_result())
    return orchestrator


@pytest.fixture
def executor():
    executor = Mock()
    executor.execute = AsyncMock(return_value=[
        {"CountryName": "Malta", "SUMAmount": 120.5},
        {"CountryName": "Spain", "SUMAmount": 80.0},
    ])
    return executor


@pytest.fixture
def cache(fake_redis, clock):
    return QueryCache(fake_redis, similarity=RedisSimilarityIndex(fake_redis, clock=clock.utcnow), clock=clock.utcnow)


@pytest.fixture
def service(orchestrator, executor, cache, fake_redis):
    return SqlQueryService(orchestrator, executor, cache, fake_redis, max_result_rows=500)


def request(question="total revenue by country", user_id="u1"):
    return QueryRequest(question=question, user_id=user_id)


class TestProcessQuery:
    """Question to rows"""

    @pytest.mark.asyncio
    async def test_success(self, service, orchestrator, executor):
        response = await service.process_query(request())

        assert response.success is True
        assert response.cached is False
        assert response.row_count == 2
        assert response.columns == ["CountryName", "SUMAmount"]
        assert response.confidence == 0.85
        executor.execute.assert_awaited_once_with(GENERATED_SQL, 500)
        assert orchestrator.synthesize.await_args.kwargs["trace_id"] == response.query_id

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, service, orchestrator, executor, cache):
        await service.process_query(request())
        await cache.drain()

        response = await service.process_query(request("Total revenue by country "))

        assert response.success is True
        assert response.cached is True
        assert response.row_count == 2
        assert orchestrator.synthesize.await_count == 1
        assert executor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_rephrased_question_hits_semantic_cache(self, service, orchestrator, cache):
        await service.process_query(request("total revenue by country"))
        await cache.drain()

        response = await service.process_query(request("total revenue by countries"))

        assert response.cached is True
        assert orchestrator.synthesize.await_count == 1

    @pytest.mark.asyncio
    async def test_synthesis_failure(self, service, orchestrator, executor):
        orchestrator.synthesize.return_value = synthesis_result(
            success=False, error="No relevant tables found", error_code="NO_TABLES_FOUND"
        )

        response = await service.process_query(request())

        assert response.success is False
        assert response.error_code == "NO_TABLES_FOUND"
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsafe_sql_never_executed(self, service, orchestrator, executor):
        orchestrator.synthesize.return_value = synthesis_result(sql="DELETE FROM Transactions")

        response = await service.process_query(request())

        assert response.success is False
        assert response.error_code == "UNSAFE_QUERY"
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_execution_error_propagates(self, service, executor):
        executor.execute.side_effect = ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await service.process_query(request())

    @pytest.mark.asyncio
    async def test_performance_recorded(self, service):
        await service.process_query(request())

        metrics = await service.get_query_performance(hash_query("total revenue by country"))

        assert metrics.row_count == 2
        assert metrics.from_cache is False


class TestExecuteQuery:
    """Raw SQL execution"""

    @pytest.mark.asyncio
    async def test_runs_read_only_sql(self, service, executor):
        response = await service.execute_query("SELECT CountryName FROM Countries;")

        assert response.success is True
        executor.execute.assert_awaited_once_with("SELECT CountryName FROM Countries", 500)

    @pytest.mark.asyncio
    async def test_rejects_ddl(self, service, executor):
        response = await service.execute_query("DROP TABLE Countries")

        assert response.error_code == "UNSAFE_QUERY"
        executor.execute.assert_not_awaited()


class TestHistoryAndFeedback:
    """Per-user records"""

    @pytest.mark.asyncio
    async def test_history_newest_first_with_paging(self, service):
        for question in ["total deposits", "total withdrawals", "total revenue by country"]:
            await service.process_query(request(question))

        first_page = await service.get_query_history("u1", page=1, page_size=2)
        second_page = await service.get_query_history("u1", page=2, page_size=2)

        assert [item.question for item in first_page] == ["total revenue by country", "total withdrawals"]
        assert [item.question for item in second_page] == ["total deposits"]
        assert await service.get_query_history("someone-else") == []

    @pytest.mark.asyncio
    async def test_suggestions_skip_failures_and_duplicates(self, service, orchestrator):
        await service.process_query(request("total deposits"))
        orchestrator.synthesize.return_value = synthesis_result(success=False, error="boom", error_code="X")
        await service.process_query(request("broken question"))

        suggestions = await service.get_query_suggestions("u1")

        assert suggestions == ["total deposits"]

    @pytest.mark.asyncio
    async def test_suggestions_filtered_by_context(self, service):
        await service.process_query(request("total deposits"))
        await service.process_query(request("top players by bets"))

        assert await service.get_query_suggestions("u1", context="players") == ["top players by bets"]

    @pytest.mark.asyncio
    async def test_feedback_stored(self, service, fake_redis):
        feedback = QueryFeedback(query_id="q1", feedback="negative", comments="wrong country")

        assert await service.submit_feedback(feedback, "u1") is True

        stored = json.loads(fake_redis.lists[service.feedback_key("q1")][0])
        assert stored["feedback"] == "negative"
        assert stored["user_id"] == "u1"

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_query(self, orchestrator, executor, cache, failing_redis):
        service = SqlQueryService(orchestrator, executor, cache, failing_redis)

        response = await service.process_query(request())

        assert response.success is True


class TestCacheOperations:
    """Direct cache access"""

    @pytest.mark.asyncio
    async def test_cache_and_read_back(self, service):
        response = await service.process_query(request())

        await service.cache_query("abc", response)
        cached = await service.get_cached_query("abc")

        assert cached.cached is True
        assert cached.sql == GENERATED_SQL

    @pytest.mark.asyncio
    async def test_invalidate(self, service):
        response = await service.process_query(request())
        await service.cache_query("abc", response)

        assert await service.invalidate_query_cache("abc") == 1
        assert await service.get_cached_query("abc") is None

    @pytest.mark.asyncio
    async def test_unknown_performance_is_empty(self, service):
        metrics = await service.get_query_performance("missing")

        assert metrics.execution_time_ms == 0
        assert metrics.row_count == 0


if __name__ == "__main__":
    pytest.main([__file__])
