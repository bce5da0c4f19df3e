"""
Exact-match and semantic result cache on Redis.

Every operation is best-effort: failures are logged, counted and swallowed
so a cache outage never fails query processing.
"""
import asyncio
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional, Set

import redis.asyncio as aioredis

from ..models import CacheEntry, CacheStatistics, CacheWarmupReport
from ..services.interfaces import SimilarityService
from ..utils.naming import table_key

logger = logging.getLogger(__name__)


def hash_query(query_text: str) -> str:
    """Stable hash of the trimmed, lowercased query text"""
    normalized = query_text.strip().lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


# Stale index entries skipped per semantic lookup
MAX_STALE_MATCHES = 5


class QueryCache:
    """
    Result cache with exact and similarity lookups.

    Args:
        redis_client: Async Redis client created with ``decode_responses=True``
        similarity: Similarity collaborator for semantic lookups
        key_prefix: Namespace for every key this cache writes
        exact_ttl_seconds: Default expiry of exact-match entries
        semantic_ttl_seconds: Default expiry of semantic entries
        similarity_threshold: Minimum score for a semantic hit
        clock: Injected for tests
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        similarity: Optional[SimilarityService] = None,
        key_prefix: str = "query_cache",
        exact_ttl_seconds: int = 3600,
        semantic_ttl_seconds: int = 86400,
        similarity_threshold: float = 0.85,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.redis = redis_client
        self.similarity = similarity
        self.key_prefix = key_prefix
        self.exact_ttl_seconds = exact_ttl_seconds
        self.semantic_ttl_seconds = semantic_ttl_seconds
        self.similarity_threshold = similarity_threshold
        self._clock = clock
        self._stats = CacheStatistics()
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def exact_key(self, query_hash: str) -> str:
        return f"{self.key_prefix}:{query_hash}"

    def semantic_key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}:semantic:{fingerprint}"

    def table_index_key(self, table_name: str) -> str:
        return f"{self.key_prefix}:table:{table_key(table_name)}"

    def _is_entry_key(self, key: str) -> bool:
        return not (
            key.startswith(f"{self.key_prefix}:table:")
            or key == f"{self.key_prefix}:semantic_index"
        )

    # ------------------------------------------------------------------
    # Exact match
    # ------------------------------------------------------------------

    async def get(self, query_hash: str) -> Optional[str]:
        """
        Read an entry by hash.

        Returns:
            The stored value, or None on miss, expiry or cache failure
        """
        value = await self._read(self.exact_key(query_hash))
        if value is None:
            self._stats.misses += 1
        else:
            self._stats.hits += 1
        return value

    async def get_for_query(self, query_text: str) -> Optional[str]:
        return await self.get(hash_query(query_text))

    async def set(
        self,
        query_hash: str,
        value: str,
        tables: Optional[Iterable[str]] = None,
        expiry_seconds: Optional[int] = None
    ) -> bool:
        ttl = self.exact_ttl_seconds if expiry_seconds is None else expiry_seconds
        return await self._write(self.exact_key(query_hash), value, ttl, tables)

    async def set_for_query(
        self,
        query_text: str,
        value: str,
        tables: Optional[Iterable[str]] = None,
        expiry_seconds: Optional[int] = None
    ) -> bool:
        return await self.set(hash_query(query_text), value, tables, expiry_seconds)

    # ------------------------------------------------------------------
    # Semantic match
    # ------------------------------------------------------------------

    async def get_semantic(
        self,
        natural_language_query: str,
        sql_query: str = ""
    ) -> Optional[str]:
        """
        Return the cached value of the most similar prior query above the threshold.

        A match whose value has already gone is dropped from the index and the
        lookup repeats, so a stale neighbour never hides a live one.
        """
        if self.similarity is None:
            return None

        for _ in range(MAX_STALE_MATCHES + 1):
            try:
                match = await self.similarity.find_similar(natural_language_query, sql_query)
            except Exception as e:
                self._record_error("semantic lookup", e)
                return None

            if match is None or match.score < self.similarity_threshold:
                return None

            value = await self._read(self.semantic_key(match.fingerprint))
            if value is not None:
                self._stats.semantic_hits += 1
                logger.debug(f"Semantic cache hit (score={match.score:.2f}) for '{natural_language_query}'")
                return value

            try:
                await self.similarity.remove(match.fingerprint)
            except Exception as e:
                self._record_error("semantic index cleanup", e)
                return None

        return None

    async def set_semantic(
        self,
        natural_language_query: str,
        sql_query: str,
        value: str,
        tables: Optional[Iterable[str]] = None,
        expiry_seconds: Optional[int] = None
    ) -> bool:
        if self.similarity is None:
            return False
        tables = list(tables or [])
        fingerprint = hash_query(natural_language_query)
        ttl = self.semantic_ttl_seconds if expiry_seconds is None else expiry_seconds
        expires_at = self._clock() + timedelta(seconds=ttl)

        stored = await self._write(self.semantic_key(fingerprint), value, ttl, tables)
        if not stored:
            return False
        try:
            await self.similarity.index(fingerprint, natural_language_query, sql_query, tables, expires_at)
        except Exception as e:
            self._record_error("semantic index", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, query_hash: str) -> bool:
        try:
            removed = await self.redis.delete(self.exact_key(query_hash))
        except Exception as e:
            self._record_error("invalidate", e)
            return False
        self._stats.invalidations += removed
        return removed > 0

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key under this cache's prefix matching a glob pattern.

        Args:
            pattern: Glob applied after the prefix, e.g. "*" or "semantic:*"

        Returns:
            Number of deleted keys
        """
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{self.key_prefix}:{pattern}")]
            removed = await self.redis.delete(*keys) if keys else 0
        except Exception as e:
            self._record_error("invalidate pattern", e)
            return 0
        self._stats.invalidations += removed
        logger.info(f"Invalidated {removed} cache entries matching '{pattern}'")
        return removed

    async def invalidate_for_data_change(self, table_name: str, change_type: str) -> int:
        """
        Drop everything that may reflect stale data of a table.

        Removes the table's indexed entries, keys whose name mentions the
        table and the semantic entries indexed for it.
        """
        logger.info(f"Data change on '{table_name}' ({change_type}); invalidating cache")
        try:
            index_key = self.table_index_key(table_name)
            keys = set(await self.redis.smembers(index_key))
            async for key in self.redis.scan_iter(match=f"{self.key_prefix}:*{table_name}*"):
                if self._is_entry_key(key):
                    keys.add(key)

            if self.similarity is not None:
                for fingerprint in await self.similarity.remove_for_table(table_name):
                    keys.add(self.semantic_key(fingerprint))

            removed = await self.redis.delete(*keys) if keys else 0
            await self.redis.delete(index_key)
        except Exception as e:
            self._record_error("data change invalidation", e)
            return 0

        self._stats.invalidations += removed
        return removed

    # ------------------------------------------------------------------
    # Warmup and statistics
    # ------------------------------------------------------------------

    async def warmup(self, common_queries: List[str]) -> CacheWarmupReport:
        """Probe the cache for common queries and report the cold ones; nothing is populated"""
        report = CacheWarmupReport()
        for query_text in common_queries:
            report.probed += 1
            if await self._read(self.exact_key(hash_query(query_text))) is not None:
                report.hits += 1
            else:
                report.misses.append(query_text)
        logger.info(f"Cache warmup probe: {report.hits}/{report.probed} warm")
        return report

    def get_statistics(self) -> CacheStatistics:
        return self._stats.model_copy()

    # ------------------------------------------------------------------
    # Fire-and-forget
    # ------------------------------------------------------------------

    def schedule(self, operation: Awaitable, description: str = "cache write") -> asyncio.Task:
        """
        Run a cache operation in the background.

        The task is not tied to the caller: cancelling the request does not
        cancel the write, and failures only reach the log.
        """
        task = asyncio.ensure_future(operation)
        self._background.add(task)
        task.add_done_callback(lambda done: self._on_background_done(done, description))
        return task

    async def drain(self) -> None:
        """Wait for scheduled background operations"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _on_background_done(self, task: asyncio.Task, description: str) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._record_error(description, error)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _read(self, key: str) -> Optional[str]:
        try:
            raw = await self.redis.get(key)
            if raw is None:
                return None
            entry = CacheEntry.model_validate_json(raw)
        except Exception as e:
            self._record_error(f"read {key}", e)
            return None

        if entry.expires_at <= self._clock():
            try:
                await self.redis.delete(key)
            except Exception as e:
                self._record_error(f"evict {key}", e)
            return None
        return entry.value

    async def _write(
        self,
        key: str,
        value: str,
        ttl_seconds: int,
        tables: Optional[Iterable[str]]
    ) -> bool:
        # A non-positive expiry means the value is already stale; drop any older copy instead
        if ttl_seconds <= 0:
            try:
                await self.redis.delete(key)
            except Exception as e:
                self._record_error(f"evict {key}", e)
            return False

        now = self._clock()
        tables = list(tables or [])
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            tables=tables
        )
        try:
            await self.redis.set(key, entry.model_dump_json(), ex=ttl_seconds)
            for table in tables:
                index_key = self.table_index_key(table)
                await self.redis.sadd(index_key, key)
                await self.redis.expire(index_key, max(ttl_seconds, self.semantic_ttl_seconds))
        except Exception as e:
            self._record_error(f"write {key}", e)
            return False

        self._stats.writes += 1
        return True

    def _record_error(self, operation: str, error: BaseException) -> None:
        self._stats.errors += 1
        logger.warning(f"Cache {operation} failed: {error}")
