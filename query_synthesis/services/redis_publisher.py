"""Redis pub/sub publisher for synthesis trace events"""
import logging
from typing import Optional

import redis.asyncio as aioredis

from ..config import settings
from ..models import TraceEntry
from ..utils.json_encoder import json_dumps

logger = logging.getLogger(__name__)


class TracePublisher:
    """Publishes each pipeline step's trace entry on ``synthesis_trace_{trace_id}``"""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None
    ):
        self.redis_url = redis_url or settings.REDIS_URL
        self._client = client

    async def get_client(self) -> aioredis.Redis:
        """Get or create Redis client"""
        if self._client is None:
            self._client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        return self._client

    async def close(self):
        """Close Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def channel_for(trace_id: str) -> str:
        return f"synthesis_trace_{trace_id}"

    async def publish_trace(self, entry: TraceEntry) -> None:
        """
        Publish one trace entry.

        Trace events are non-critical: failures are logged and never raised.
        """
        try:
            client = await self.get_client()
            channel = self.channel_for(entry.trace_id)
            payload = {
                "type": "TRACE",
                "traceId": entry.trace_id,
                "step": entry.step.value,
                "status": entry.status,
                "confidence": entry.confidence,
                "detail": entry.detail,
                "timestamp": entry.timestamp.isoformat() + "Z",
            }
            await client.publish(channel, json_dumps(payload))
            logger.debug(f"Published {entry.step.value} to {channel}")

        except Exception as e:
            logger.error(f"Failed to publish trace for {entry.trace_id}: {e}")
