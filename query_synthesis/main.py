"""Composition root for the Query Synthesis Service"""
import asyncio
import logging
import sys
from typing import List, Optional

import redis.asyncio as aioredis

from .cache import QueryCache, RedisSimilarityIndex
from .config import settings
from .models import QueryRequest
from .resilience import (
    ConsecutiveFailureCircuitBreaker,
    FailureRateCircuitBreaker,
    ResiliencePolicy,
    is_transient_ai_error,
    is_transient_db_error,
)
from .resilience.resilient_ai import ResilientAIService, ResilientBusinessContextAnalyzer
from .resilience.resilient_query import ResilientQueryService
from .services.business_context import LLMBusinessContextAnalyzer
from .services.interfaces import AIService, BusinessContextAnalyzer, QueryService
from .services.ollama_client import OllamaAIService
from .services.openmetadata_client import OpenMetadataRetriever
from .services.query_service import SqlQueryService
from .services.redis_publisher import TracePublisher
from .services.trino_client import get_trino_client
from .utils.json_encoder import json_dumps
from .workflow import SynthesisContext, SynthesisOrchestrator

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper()),
        format=settings.LOG_FORMAT
    )
    logger.info(f"{settings.SERVICE_NAME} logging configured")


def build_db_policy() -> ResiliencePolicy:
    breaker = FailureRateCircuitBreaker(
        "database",
        failure_rate_threshold=settings.DB_BREAKER_FAILURE_RATE,
        sampling_seconds=settings.DB_BREAKER_SAMPLING_SECONDS,
        minimum_throughput=settings.DB_BREAKER_MIN_THROUGHPUT,
        cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS
    )
    return ResiliencePolicy(
        "database",
        breaker,
        retry_attempts=settings.RETRY_ATTEMPTS,
        backoff_multiplier=settings.BACKOFF_MULTIPLIER_SECONDS,
        timeout_seconds=settings.QUERY_TIMEOUT_SECONDS,
        is_transient=is_transient_db_error
    )


# Global AI policy shared by generation and business-context analysis
_ai_policy: Optional[ResiliencePolicy] = None


def get_ai_policy() -> ResiliencePolicy:
    """Get the process-wide AI policy so every model call trips the same breaker"""
    global _ai_policy
    if _ai_policy is None:
        breaker = ConsecutiveFailureCircuitBreaker(
            "ai",
            failure_threshold=settings.AI_BREAKER_CONSECUTIVE_FAILURES,
            cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS
        )
        _ai_policy = ResiliencePolicy(
            "ai",
            breaker,
            retry_attempts=settings.RETRY_ATTEMPTS,
            backoff_multiplier=settings.BACKOFF_MULTIPLIER_SECONDS,
            timeout_seconds=settings.AI_TIMEOUT_SECONDS,
            is_transient=is_transient_ai_error
        )
    return _ai_policy


def build_ai_service(inner: Optional[AIService] = None) -> AIService:
    return ResilientAIService(inner or OllamaAIService(), get_ai_policy())


def build_business_context_analyzer(inner: Optional[BusinessContextAnalyzer] = None) -> BusinessContextAnalyzer:
    return ResilientBusinessContextAnalyzer(inner or LLMBusinessContextAnalyzer(), get_ai_policy())


async def build_query_service(
    redis_client: Optional[aioredis.Redis] = None,
    catalog_tables: Optional[List[str]] = None
) -> QueryService:
    """
    Wire every component from settings.

    Args:
        redis_client: Shared client for cache, history and trace publishing
        catalog_tables: Tables whose foreign keys seed the relationship
            catalog; every table of the configured schema when omitted

    Returns:
        Resilient query service ready for requests
    """
    redis_client = redis_client or aioredis.from_url(settings.REDIS_URL, decode_responses=True)

    retriever = OpenMetadataRetriever()
    if catalog_tables is None:
        catalog_tables = [entity["name"] for entity in await retriever.client.list_tables()]
    catalog = await retriever.load_relationship_catalog(catalog_tables)
    logger.info(f"Relationship catalog loaded for {len(catalog_tables)} tables")

    context = SynthesisContext(
        analyzer=build_business_context_analyzer(),
        metadata_retriever=retriever,
        catalog=catalog,
        publisher=TracePublisher(client=redis_client)
    )
    cache = QueryCache(
        redis_client,
        similarity=RedisSimilarityIndex(redis_client, settings.CACHE_KEY_PREFIX),
        key_prefix=settings.CACHE_KEY_PREFIX,
        exact_ttl_seconds=settings.CACHE_EXACT_TTL_SECONDS,
        semantic_ttl_seconds=settings.CACHE_SEMANTIC_TTL_SECONDS,
        similarity_threshold=settings.CACHE_SIMILARITY_THRESHOLD
    )
    inner = SqlQueryService(
        SynthesisOrchestrator(context),
        get_trino_client(),
        cache,
        redis_client,
        max_result_rows=settings.MAX_RESULT_ROWS
    )
    return ResilientQueryService(inner, build_db_policy())


async def answer(
    question: str,
    service: Optional[QueryService] = None,
    ai_service: Optional[AIService] = None
) -> str:
    """Process one question and return the response, plus an insight on success, as JSON"""
    service = service or await build_query_service()
    ai_service = ai_service or build_ai_service()

    response = await service.process_query(QueryRequest(question=question))
    output = response.model_dump(mode="json")
    if response.success:
        output["insight"] = await ai_service.generate_insight(question, response.data)
    return json_dumps(output, indent=2)


def main() -> None:
    configure_logging()
    if len(sys.argv) < 2:
        print("usage: query-synthesis \"<question>\"", file=sys.stderr)
        sys.exit(2)
    print(asyncio.run(answer(" ".join(sys.argv[1:]))))


if __name__ == "__main__":
    main()
