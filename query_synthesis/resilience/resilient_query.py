"""
Query service decorator adding retry, circuit breaking and deadlines.

Callers always get a structured answer: primary operations turn failures
into ``QueryResponse(success=False)``; side operations fall back to safe
defaults.
"""
import asyncio
import logging
import uuid
from datetime import date, timedelta
from typing import Callable, List, Optional

from ..exceptions import CircuitBreakerOpenError
from ..models import (
    QueryFeedback,
    QueryHistoryItem,
    QueryPerformanceMetrics,
    QueryRequest,
    QueryResponse,
)
from ..services.interfaces import QueryService
from .circuit_breaker import ConsecutiveFailureCircuitBreaker
from .policies import ResiliencePolicy

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
QUERY_FAILED = "QUERY_FAILED"

UNAVAILABLE_MESSAGE = (
    "The query service is temporarily unavailable. Please try again in a few moments."
)


def default_suggestions(today: date) -> List[str]:
    yesterday = (today - timedelta(days=1)).isoformat()
    return [
        f"Show me total deposits for yesterday ({yesterday})",
        "Top 10 players by deposits in the last 7 days",
        "Show me daily revenue for the last week",
    ]


class ResilientQueryService(QueryService):
    """
    Wraps another QueryService with the database resilience policy.

    Args:
        inner: Service doing the actual work
        policy: Retry/breaker/deadline policy for primary operations
        best_effort_policy: Lighter policy for side operations; defaults to
            ``policy`` with a single retry behind its own breaker, so failing
            side operations never open the primary breaker
        today: Injected for tests
    """

    def __init__(
        self,
        inner: QueryService,
        policy: ResiliencePolicy,
        best_effort_policy: Optional[ResiliencePolicy] = None,
        today: Callable[[], date] = date.today
    ):
        self.inner = inner
        self.policy = policy
        self.best_effort_policy = best_effort_policy or policy.with_retries(
            1, breaker=ConsecutiveFailureCircuitBreaker(f"{policy.name}.side_operations")
        )
        self._today = today

    async def process_query(self, request: QueryRequest) -> QueryResponse:
        query_id = str(uuid.uuid4())
        try:
            return await self.policy.execute(
                lambda: self.inner.process_query(request), "process_query"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._failure_response(query_id, e, "process_query")

    async def execute_query(self, sql: str) -> QueryResponse:
        query_id = str(uuid.uuid4())
        try:
            return await self.policy.execute(
                lambda: self.inner.execute_query(sql), "execute_query"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._failure_response(query_id, e, "execute_query", sql=sql)

    async def get_query_history(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20
    ) -> List[QueryHistoryItem]:
        return await self.best_effort_policy.with_retries(2).execute_best_effort(
            lambda: self.inner.get_query_history(user_id, page, page_size),
            default=[],
            operation="get_query_history"
        )

    async def submit_feedback(self, feedback: QueryFeedback, user_id: str) -> bool:
        return await self.best_effort_policy.with_retries(2).execute_best_effort(
            lambda: self.inner.submit_feedback(feedback, user_id),
            default=False,
            operation="submit_feedback"
        )

    async def get_query_suggestions(
        self,
        user_id: str,
        context: Optional[str] = None
    ) -> List[str]:
        return await self.best_effort_policy.execute_best_effort(
            lambda: self.inner.get_query_suggestions(user_id, context),
            default=default_suggestions(self._today()),
            operation="get_query_suggestions"
        )

    async def get_cached_query(self, query_hash: str) -> Optional[QueryResponse]:
        return await self.best_effort_policy.execute_best_effort(
            lambda: self.inner.get_cached_query(query_hash),
            default=None,
            operation="get_cached_query"
        )

    async def cache_query(
        self,
        query_hash: str,
        response: QueryResponse,
        expiry_seconds: Optional[int] = None
    ) -> None:
        await self.best_effort_policy.execute_best_effort(
            lambda: self.inner.cache_query(query_hash, response, expiry_seconds),
            default=None,
            operation="cache_query"
        )

    async def get_query_performance(self, query_hash: str) -> QueryPerformanceMetrics:
        return await self.best_effort_policy.execute_best_effort(
            lambda: self.inner.get_query_performance(query_hash),
            default=QueryPerformanceMetrics(query_hash=query_hash),
            operation="get_query_performance"
        )

    async def invalidate_query_cache(self, pattern: str) -> int:
        return await self.best_effort_policy.execute_best_effort(
            lambda: self.inner.invalidate_query_cache(pattern),
            default=0,
            operation="invalidate_query_cache"
        )

    def _failure_response(
        self,
        query_id: str,
        error: Exception,
        operation: str,
        sql: str = ""
    ) -> QueryResponse:
        if isinstance(error, CircuitBreakerOpenError) or self.policy.is_transient(error):
            logger.error(f"[{query_id}] {operation} unavailable: {error}")
            return QueryResponse(
                query_id=query_id,
                success=False,
                sql=sql,
                error=UNAVAILABLE_MESSAGE,
                error_code=SERVICE_UNAVAILABLE
            )

        logger.error(f"[{query_id}] {operation} failed: {error}")
        return QueryResponse(
            query_id=query_id,
            success=False,
            sql=sql,
            error=str(error),
            error_code=QUERY_FAILED
        )
