"""Query service: synthesis, safe execution, caching and history"""
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis

from ..cache import QueryCache, hash_query
from ..exceptions import UnsafeQueryError
from ..models import (
    QueryFeedback,
    QueryHistoryItem,
    QueryPerformanceMetrics,
    QueryRequest,
    QueryResponse,
)
from ..utils.json_encoder import json_dumps, normalize_rows
from ..utils.validators import ensure_read_only
from ..workflow import SynthesisOrchestrator
from .interfaces import QueryExecutor, QueryService

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5


class SqlQueryService(QueryService):
    """
    Plain query service without retry or circuit breaking.

    Wrap it in ``ResilientQueryService`` before handing it to callers.

    Args:
        orchestrator: Turns questions into SQL
        executor: Runs read-only SQL
        cache: Result cache
        redis_client: Store for history, feedback and performance records
        max_result_rows: Row cap applied to every execution
        history_limit: Entries kept per user
        key_prefix: Namespace for history, feedback and performance keys
    """

    def __init__(
        self,
        orchestrator: SynthesisOrchestrator,
        executor: QueryExecutor,
        cache: QueryCache,
        redis_client: aioredis.Redis,
        max_result_rows: int = 10000,
        history_limit: int = 100,
        key_prefix: str = "query_service"
    ):
        self.orchestrator = orchestrator
        self.executor = executor
        self.cache = cache
        self.redis = redis_client
        self.max_result_rows = max_result_rows
        self.history_limit = history_limit
        self.key_prefix = key_prefix

    def history_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:history:{user_id}"

    def feedback_key(self, query_id: str) -> str:
        return f"{self.key_prefix}:feedback:{query_id}"

    def performance_key(self, query_hash: str) -> str:
        return f"{self.key_prefix}:performance:{query_hash}"

    async def process_query(self, request: QueryRequest) -> QueryResponse:
        """
        Answer a question end to end.

        Order: cache lookup (exact, then semantic), synthesis, read-only
        check, execution, then background cache write and history record.
        """
        query_id = str(uuid.uuid4())
        query_hash = hash_query(request.question)
        start = time.monotonic()

        logger.info(f"[{query_id}] ===== PROCESS QUERY START =====")
        logger.info(f"[{query_id}] Question: {request.question}")

        cached = await self._cached_response(request.question, query_hash)
        if cached is not None:
            logger.info(f"[{query_id}] Served from cache")
            logger.info(f"[{query_id}] ===== PROCESS QUERY END (CACHED) =====")
            await self._record_performance(query_hash, cached, from_cache=True)
            return cached

        result = await self.orchestrator.synthesize(
            request.question,
            profile=request.profile,
            tables=request.tables,
            trace_id=query_id
        )

        if not result.success:
            logger.error(f"[{query_id}] ===== PROCESS QUERY END (ERROR) =====")
            response = QueryResponse(
                query_id=query_id,
                success=False,
                error=result.error,
                error_code=result.error_code
            )
            await self._record_history(request, response)
            return response

        try:
            sql = ensure_read_only(result.generated_sql)
        except UnsafeQueryError as e:
            logger.error(f"[{query_id}] Rejected generated SQL: {e}")
            response = QueryResponse(
                query_id=query_id,
                success=False,
                sql=result.generated_sql,
                error=str(e),
                error_code="UNSAFE_QUERY"
            )
            await self._record_history(request, response)
            return response

        rows = normalize_rows(await self.executor.execute(sql, self.max_result_rows))
        response = self._build_response(
            query_id, sql, rows, result.overall_confidence, start
        )

        logger.info(f"[{query_id}] Returned {response.row_count} rows in {response.execution_time_ms}ms")
        logger.info(f"[{query_id}] ===== PROCESS QUERY END (SUCCESS) =====")

        tables = result.processing_metadata.get("tables", [])
        payload = response.model_dump_json()
        self.cache.schedule(
            self.cache.set(query_hash, payload, tables=tables),
            "exact cache write"
        )
        self.cache.schedule(
            self.cache.set_semantic(request.question, sql, payload, tables=tables),
            "semantic cache write"
        )
        await self._record_history(request, response)
        await self._record_performance(query_hash, response, from_cache=False)
        return response

    async def execute_query(self, sql: str) -> QueryResponse:
        query_id = str(uuid.uuid4())
        start = time.monotonic()
        try:
            statement = ensure_read_only(sql)
        except UnsafeQueryError as e:
            logger.error(f"[{query_id}] Rejected SQL: {e}")
            return QueryResponse(
                query_id=query_id,
                success=False,
                sql=sql,
                error=str(e),
                error_code="UNSAFE_QUERY"
            )

        rows = normalize_rows(await self.executor.execute(statement, self.max_result_rows))
        return self._build_response(query_id, statement, rows, 1.0, start)

    async def get_query_history(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20
    ) -> List[QueryHistoryItem]:
        first = max(page - 1, 0) * page_size
        raw_items = await self.redis.lrange(self.history_key(user_id), first, first + page_size - 1)
        return [QueryHistoryItem.model_validate_json(item) for item in raw_items]

    async def submit_feedback(self, feedback: QueryFeedback, user_id: str) -> bool:
        record: Dict[str, Any] = feedback.model_dump()
        record["user_id"] = user_id
        record["submitted_at"] = datetime.utcnow()
        await self.redis.lpush(self.feedback_key(feedback.query_id), json_dumps(record))
        logger.info(f"[{feedback.query_id}] Feedback '{feedback.feedback}' from {user_id}")
        return True

    async def get_query_suggestions(
        self,
        user_id: str,
        context: Optional[str] = None
    ) -> List[str]:
        """Recent successful questions of the user, optionally filtered by a context phrase"""
        history = await self.get_query_history(user_id, page=1, page_size=self.history_limit)
        suggestions: List[str] = []
        for item in history:
            if not item.success or item.question in suggestions:
                continue
            if context and context.lower() not in item.question.lower():
                continue
            suggestions.append(item.question)
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
        return suggestions

    async def get_cached_query(self, query_hash: str) -> Optional[QueryResponse]:
        payload = await self.cache.get(query_hash)
        if payload is None:
            return None
        response = QueryResponse.model_validate_json(payload)
        response.cached = True
        return response

    async def cache_query(
        self,
        query_hash: str,
        response: QueryResponse,
        expiry_seconds: Optional[int] = None
    ) -> None:
        await self.cache.set(query_hash, response.model_dump_json(), expiry_seconds=expiry_seconds)

    async def get_query_performance(self, query_hash: str) -> QueryPerformanceMetrics:
        raw = await self.redis.get(self.performance_key(query_hash))
        if raw is None:
            return QueryPerformanceMetrics(query_hash=query_hash)
        return QueryPerformanceMetrics.model_validate_json(raw)

    async def invalidate_query_cache(self, pattern: str) -> int:
        return await self.cache.invalidate_pattern(pattern)

    async def _cached_response(self, question: str, query_hash: str) -> Optional[QueryResponse]:
        payload = await self.cache.get(query_hash)
        if payload is None:
            payload = await self.cache.get_semantic(question)
        if payload is None:
            return None
        try:
            response = QueryResponse.model_validate_json(payload)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {query_hash}: {e}")
            return None
        response.cached = True
        return response

    def _build_response(
        self,
        query_id: str,
        sql: str,
        rows: List[Dict[str, Any]],
        confidence: float,
        start: float
    ) -> QueryResponse:
        return QueryResponse(
            query_id=query_id,
            success=True,
            sql=sql,
            data=rows,
            columns=list(rows[0].keys()) if rows else [],
            row_count=len(rows),
            confidence=confidence,
            execution_time_ms=int((time.monotonic() - start) * 1000)
        )

    async def _record_history(self, request: QueryRequest, response: QueryResponse) -> None:
        item = QueryHistoryItem(
            query_id=response.query_id,
            user_id=request.user_id,
            question=request.question,
            sql=response.sql,
            success=response.success
        )
        key = self.history_key(request.user_id)
        try:
            await self.redis.lpush(key, item.model_dump_json())
            await self.redis.ltrim(key, 0, self.history_limit - 1)
        except Exception as e:
            logger.warning(f"[{response.query_id}] Failed to record history: {e}")

    async def _record_performance(
        self,
        query_hash: str,
        response: QueryResponse,
        from_cache: bool
    ) -> None:
        metrics = QueryPerformanceMetrics(
            query_hash=query_hash,
            execution_time_ms=response.execution_time_ms,
            row_count=response.row_count,
            from_cache=from_cache
        )
        try:
            await self.redis.set(self.performance_key(query_hash), metrics.model_dump_json())
        except Exception as e:
            logger.warning(f"Failed to record performance for {query_hash}: {e}")
