"""
AI service decorator adding retry, circuit breaking and deadlines.

Exhausted or rejected calls return clearly marked placeholder text; streams
end with an explicit error event instead of silently truncating.
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, List

from ..exceptions import CircuitBreakerOpenError
from ..models import BusinessContextProfile, StreamingEvent
from ..services.interfaces import AIService, BusinessContextAnalyzer
from .policies import ResiliencePolicy

logger = logging.getLogger(__name__)

FALLBACK_MARKER = "[AI unavailable]"
FALLBACK_SQL = f"-- {FALLBACK_MARKER} SQL generation is temporarily unavailable. Please try again shortly."
FALLBACK_INSIGHT = f"{FALLBACK_MARKER} Insights are temporarily unavailable for this result."
FALLBACK_EXPLANATION = f"{FALLBACK_MARKER} An explanation for this query is temporarily unavailable."


class ResilientAIService(AIService):
    """Wraps another AIService with the AI resilience policy"""

    def __init__(self, inner: AIService, policy: ResiliencePolicy):
        self.inner = inner
        self.policy = policy

    async def generate_sql(self, prompt: str) -> str:
        return await self._generate(
            lambda: self.inner.generate_sql(prompt), FALLBACK_SQL, "generate_sql"
        )

    async def generate_insight(self, question: str, rows: List[Dict[str, Any]]) -> str:
        return await self._generate(
            lambda: self.inner.generate_insight(question, rows),
            FALLBACK_INSIGHT,
            "generate_insight"
        )

    async def generate_explanation(self, sql: str) -> str:
        return await self._generate(
            lambda: self.inner.generate_explanation(sql),
            FALLBACK_EXPLANATION,
            "generate_explanation"
        )

    def stream_sql(self, prompt: str) -> AsyncIterator[StreamingEvent]:
        return self._stream(lambda: self.inner.stream_sql(prompt), FALLBACK_SQL, "stream_sql")

    def stream_insight(self, question: str, rows: List[Dict[str, Any]]) -> AsyncIterator[StreamingEvent]:
        return self._stream(
            lambda: self.inner.stream_insight(question, rows),
            FALLBACK_INSIGHT,
            "stream_insight"
        )

    def stream_explanation(self, sql: str) -> AsyncIterator[StreamingEvent]:
        return self._stream(
            lambda: self.inner.stream_explanation(sql),
            FALLBACK_EXPLANATION,
            "stream_explanation"
        )

    async def _generate(self, func: Callable, fallback: str, operation: str) -> str:
        try:
            return await self.policy.execute(func, operation)
        except asyncio.CancelledError:
            raise
        except CircuitBreakerOpenError as e:
            logger.warning(f"AI {operation} rejected: {e}")
            return fallback
        except Exception as e:
            logger.error(f"AI {operation} failed after retries: {e}")
            return fallback

    async def _stream(
        self,
        factory: Callable[[], AsyncIterator[StreamingEvent]],
        fallback: str,
        operation: str
    ) -> AsyncIterator[StreamingEvent]:
        """
        Stream through the breaker with the policy deadline.

        Streams are not retried: a restarted stream would repeat output the
        caller already has.
        """
        breaker = self.policy.breaker
        if not breaker.allow():
            error = CircuitBreakerOpenError(breaker.name, breaker.retry_after())
            logger.warning(f"AI {operation} rejected: {error}")
            yield StreamingEvent(type="error", content=str(error))
            yield StreamingEvent(type="complete", content=fallback, is_fallback=True)
            return

        loop = asyncio.get_running_loop()
        timeout = self.policy.timeout_seconds
        deadline = loop.time() + timeout if timeout is not None else None
        emitted = False
        settled = False

        try:
            iterator = factory().__aiter__()
            while True:
                remaining = None
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError(f"AI {operation} deadline exceeded")
                try:
                    event = await asyncio.wait_for(iterator.__anext__(), remaining)
                except StopAsyncIteration:
                    break
                if event.type == "chunk":
                    emitted = True
                yield event

            breaker.record_success()
            settled = True

        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.policy.is_transient(e):
                breaker.record_failure()
            else:
                breaker.release()
            settled = True
            logger.error(f"AI {operation} stream failed (partial={emitted}): {e}")

            yield StreamingEvent(type="error", content=f"Generation failed: {e}")
            if not emitted:
                yield StreamingEvent(type="complete", content=fallback, is_fallback=True)

        finally:
            if not settled:
                breaker.release()


class ResilientBusinessContextAnalyzer(BusinessContextAnalyzer):
    """
    Wraps another analyzer with the AI resilience policy.

    There is no placeholder profile to fall back to, so exhausted or
    rejected calls raise and the workflow reports the service as unavailable.
    """

    def __init__(self, inner: BusinessContextAnalyzer, policy: ResiliencePolicy):
        self.inner = inner
        self.policy = policy

    async def analyze(self, question: str) -> BusinessContextProfile:
        return await self.policy.execute(lambda: self.inner.analyze(question), "analyze_business_context")
