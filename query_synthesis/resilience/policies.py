"""
Retry, circuit breaker and deadline composition.

Retry is the outer layer and the breaker the inner one, so once the breaker
opens the remaining attempts fail fast with ``CircuitBreakerOpenError``
instead of reaching the dependency. The deadline is fixed once per call and
shared by every attempt.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from ..exceptions import (
    AIConnectionError,
    CircuitBreakerOpenError,
    EmptyAIResponseError,
    QueryExecutionError,
)
from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Timeout, network path not found, semaphore timeout, deadlock victim,
# lock request timeout, low memory (x2)
TRANSIENT_SQL_ERROR_CODES = {2, 53, 121, 1205, 1222, 8645, 8651}

# Trino error names with the same meaning, plus the executor's own tag for HTTP failures
TRANSIENT_TRINO_ERROR_NAMES = {
    "CONNECTION_ERROR",
    "ABANDONED_QUERY",
    "CLUSTER_OUT_OF_MEMORY",
    "EXCEEDED_GLOBAL_MEMORY_LIMIT",
    "EXCEEDED_TIME_LIMIT",
    "NO_NODES_AVAILABLE",
    "PAGE_TRANSPORT_TIMEOUT",
    "REMOTE_TASK_ERROR",
    "SERVER_SHUTTING_DOWN",
    "TOO_MANY_REQUESTS_FAILED",
}


def _is_timeout(error: BaseException) -> bool:
    return isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))


def is_transient_db_error(error: BaseException) -> bool:
    """Database errors worth another attempt"""
    if isinstance(error, CircuitBreakerOpenError):
        return False
    if isinstance(error, QueryExecutionError):
        return (
            error.error_code in TRANSIENT_SQL_ERROR_CODES
            or (error.error_name or "").upper() in TRANSIENT_TRINO_ERROR_NAMES
        )
    return _is_timeout(error) or isinstance(error, (ConnectionError, httpx.TransportError))


def is_transient_ai_error(error: BaseException) -> bool:
    """AI errors worth another attempt, including an empty generation"""
    if isinstance(error, CircuitBreakerOpenError):
        return False
    if isinstance(error, (EmptyAIResponseError, AIConnectionError)):
        return True
    return _is_timeout(error) or isinstance(error, (ConnectionError, httpx.TransportError))


class ResiliencePolicy:
    """
    Retry + circuit breaker + deadline around one dependency category.

    Args:
        name: Used in log messages
        breaker: Breaker shared by every call of this category
        retry_attempts: Retries after the first attempt
        backoff_multiplier: Waits are multiplier * 2^(attempt-1) seconds
        timeout_seconds: Deadline for the whole call, retries included
        is_transient: Decides which errors are retried and counted by the breaker
        sleep: Injected for tests
    """

    def __init__(
        self,
        name: str,
        breaker: CircuitBreaker,
        retry_attempts: int = 3,
        backoff_multiplier: float = 2.0,
        timeout_seconds: Optional[float] = None,
        is_transient: Callable[[BaseException], bool] = is_transient_db_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.name = name
        self.breaker = breaker
        self.retry_attempts = retry_attempts
        self.backoff_multiplier = backoff_multiplier
        self.timeout_seconds = timeout_seconds
        self.is_transient = is_transient
        self._sleep = sleep

    def with_retries(self, retry_attempts: int, breaker: Optional[CircuitBreaker] = None) -> "ResiliencePolicy":
        """Same deadline and classification with a different retry budget, and optionally its own breaker"""
        return ResiliencePolicy(
            name=breaker.name if breaker is not None else self.name,
            breaker=breaker if breaker is not None else self.breaker,
            retry_attempts=retry_attempts,
            backoff_multiplier=self.backoff_multiplier,
            timeout_seconds=self.timeout_seconds,
            is_transient=self.is_transient,
            sleep=self._sleep
        )

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        operation: str = "call",
        deadline: Optional[float] = None
    ) -> T:
        """
        Run ``func`` under the policy.

        Args:
            func: Zero-argument coroutine factory; called once per attempt
            operation: Name for log messages
            deadline: Caller deadline in event-loop time; the earlier of this
                and the policy timeout wins

        Returns:
            Result of the first successful attempt

        Raises:
            CircuitBreakerOpenError: Breaker is open
            asyncio.TimeoutError: Deadline passed
            Exception: Last error once retries are exhausted or for non-transient errors
        """
        loop = asyncio.get_running_loop()
        deadline = self._effective_deadline(loop.time(), deadline)

        async def attempt() -> T:
            remaining = None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError(f"{self.name}.{operation} deadline exceeded")
            return await self.breaker.call(
                lambda: asyncio.wait_for(func(), remaining),
                is_failure=self.is_transient
            )

        stop = stop_after_attempt(self.retry_attempts + 1)
        if self.timeout_seconds is not None:
            stop = stop | stop_after_delay(self.timeout_seconds)

        retrying = AsyncRetrying(
            stop=stop,
            wait=wait_exponential(multiplier=self.backoff_multiplier),
            retry=retry_if_exception(self.is_transient),
            before_sleep=self._log_retry(operation),
            sleep=self._sleep,
            reraise=True
        )

        async for attempt_state in retrying:
            with attempt_state:
                return await attempt()

    async def execute_best_effort(
        self,
        func: Callable[[], Awaitable[T]],
        default: Any = None,
        operation: str = "call"
    ) -> Any:
        """Run ``func``; on any failure log a warning and return ``default``"""
        try:
            return await self.execute(func, operation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{self.name}.{operation} failed, continuing without it: {e}")
            return default

    def _effective_deadline(self, now: float, deadline: Optional[float]) -> Optional[float]:
        own = now + self.timeout_seconds if self.timeout_seconds is not None else None
        if own is None:
            return deadline
        if deadline is None:
            return own
        return min(own, deadline)

    def _log_retry(self, operation: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"{self.name}.{operation} attempt {retry_state.attempt_number} failed "
                f"({type(error).__name__}: {error}); retrying in {delay:.1f}s"
            )
        return before_sleep
