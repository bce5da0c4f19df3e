"""Similarity index of prior queries kept in a Redis hash"""
import json
import logging
from datetime import datetime
from difflib import SequenceMatcher
from typing import Callable, List, Optional

import redis.asyncio as aioredis

from ..models import SemanticMatch
from ..services.interfaces import SimilarityService
from ..utils.naming import table_key

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


class RedisSimilarityIndex(SimilarityService):
    """
    Scores prior questions by normalized text similarity.

    Good enough for rephrasings that share most of their words; an
    embedding-backed SimilarityService can replace it without touching the
    cache.

    Entries carry the expiry of the cached value they point at and are
    dropped once it passes, so the hash does not outgrow the cache.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        key_prefix: str = "query_cache",
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.redis = redis_client
        self.index_key = f"{key_prefix}:semantic_index"
        self._clock = clock

    async def find_similar(
        self,
        natural_language_query: str,
        sql_query: str = ""
    ) -> Optional[SemanticMatch]:
        entries = await self.redis.hgetall(self.index_key)
        target = _normalize(natural_language_query)
        now = self._clock()
        best: Optional[SemanticMatch] = None
        expired = []

        for fingerprint, raw in entries.items():
            entry = json.loads(raw)
            if entry.get("expires_at") and datetime.fromisoformat(entry["expires_at"]) <= now:
                expired.append(fingerprint)
                continue
            score = SequenceMatcher(None, target, _normalize(entry["query"])).ratio()
            if sql_query and entry.get("sql"):
                sql_score = SequenceMatcher(None, _normalize(sql_query), _normalize(entry["sql"])).ratio()
                score = max(score, sql_score)
            if best is None or score > best.score:
                best = SemanticMatch(
                    fingerprint=fingerprint,
                    score=score,
                    natural_language_query=entry["query"],
                    sql_query=entry.get("sql", "")
                )

        if expired:
            await self.redis.hdel(self.index_key, *expired)
            logger.debug(f"Dropped {len(expired)} expired semantic entries")
        return best

    async def index(
        self,
        fingerprint: str,
        natural_language_query: str,
        sql_query: str,
        tables: List[str],
        expires_at: Optional[datetime] = None
    ) -> None:
        payload = {
            "query": natural_language_query,
            "sql": sql_query,
            "tables": [table_key(table) for table in tables],
            "expires_at": expires_at.isoformat() if expires_at is not None else None,
        }
        await self.redis.hset(self.index_key, fingerprint, json.dumps(payload))

    async def remove(self, fingerprint: str) -> None:
        await self.redis.hdel(self.index_key, fingerprint)

    async def remove_for_table(self, table_name: str) -> List[str]:
        entries = await self.redis.hgetall(self.index_key)
        key = table_key(table_name)
        removed = [
            fingerprint for fingerprint, raw in entries.items()
            if key in json.loads(raw).get("tables", [])
        ]
        if removed:
            await self.redis.hdel(self.index_key, *removed)
            logger.debug(f"Removed {len(removed)} semantic entries for table '{table_name}'")
        return removed
