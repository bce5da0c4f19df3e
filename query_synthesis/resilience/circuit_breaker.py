"""
Circuit breakers shared across concurrent requests.

State transitions happen under a lock; a half-open breaker admits exactly
one trial call and rejects every other caller until that trial reports.
"""
import logging
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from ..exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Base breaker with the Closed -> Open -> HalfOpen state machine.

    Subclasses decide when recorded failures should trip the breaker.
    """

    def __init__(
        self,
        name: str,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def retry_after(self) -> float:
        with self._lock:
            return self._remaining_cooldown()

    def allow(self) -> bool:
        """Claim permission for one call; False means fail fast"""
        with self._lock:
            self._maybe_half_open()
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state == BreakerState.HALF_OPEN:
                logger.info(f"Circuit breaker '{self.name}' reset after successful trial call")
                self._close()
            else:
                self._on_success()

    def record_failure(self) -> None:
        with self._lock:
            if self._state == BreakerState.HALF_OPEN:
                logger.error(f"Circuit breaker '{self.name}' trial call failed; reopening")
                self._open()
                return
            if self._state == BreakerState.CLOSED and self._on_failure():
                logger.error(
                    f"Circuit breaker '{self.name}' opened for {self.cooldown_seconds}s"
                )
                self._open()

    def release(self) -> None:
        """Give back a half-open trial slot without recording an outcome"""
        with self._lock:
            self._trial_in_flight = False

    async def call(
        self,
        func: Callable[[], Awaitable[Any]],
        is_failure: Callable[[BaseException], bool] = lambda error: True
    ) -> Any:
        """
        Run ``func`` through the breaker.

        Args:
            func: Zero-argument coroutine factory
            is_failure: Decides whether an exception counts against the breaker

        Returns:
            Whatever ``func`` returns

        Raises:
            CircuitBreakerOpenError: If the breaker rejects the call
        """
        if not self.allow():
            raise CircuitBreakerOpenError(self.name, self.retry_after())

        try:
            result = await func()
        except BaseException as e:
            if isinstance(e, Exception) and is_failure(e):
                self.record_failure()
            else:
                self.release()
            raise

        self.record_success()
        return result

    # Subclass hooks, called with the lock held

    def _on_success(self) -> None:
        pass

    def _on_failure(self) -> bool:
        """Record a failure while closed; return True to trip"""
        raise NotImplementedError

    def _reset_counters(self) -> None:
        pass

    # State transitions, called with the lock held

    def _maybe_half_open(self) -> None:
        if self._state == BreakerState.OPEN and self._remaining_cooldown() <= 0:
            logger.info(f"Circuit breaker '{self.name}' half-open; allowing one trial call")
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False

    def _remaining_cooldown(self) -> float:
        if self._state != BreakerState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.cooldown_seconds - self._clock())

    def _open(self) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self._reset_counters()

    def _close(self) -> None:
        self._state = BreakerState.CLOSED
        self._opened_at = None
        self._trial_in_flight = False
        self._reset_counters()


class ConsecutiveFailureCircuitBreaker(CircuitBreaker):
    """Trips after N handled failures in a row"""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(name, cooldown_seconds, clock)
        self.failure_threshold = failure_threshold
        self._consecutive_failures = 0

    def _on_success(self) -> None:
        self._consecutive_failures = 0

    def _on_failure(self) -> bool:
        self._consecutive_failures += 1
        return self._consecutive_failures >= self.failure_threshold

    def _reset_counters(self) -> None:
        self._consecutive_failures = 0


class FailureRateCircuitBreaker(CircuitBreaker):
    """
    Trips when the failure ratio inside a rolling window reaches a threshold.

    The window must also hold at least ``minimum_throughput`` calls, so a
    single early failure cannot open the breaker.
    """

    def __init__(
        self,
        name: str,
        failure_rate_threshold: float = 0.5,
        sampling_seconds: float = 30.0,
        minimum_throughput: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(name, cooldown_seconds, clock)
        self.failure_rate_threshold = failure_rate_threshold
        self.sampling_seconds = sampling_seconds
        self.minimum_throughput = minimum_throughput
        self._outcomes: Deque[Tuple[float, bool]] = deque()

    def failure_rate(self) -> float:
        with self._lock:
            self._prune()
            return self._rate()

    def _on_success(self) -> None:
        self._outcomes.append((self._clock(), True))
        self._prune()

    def _on_failure(self) -> bool:
        self._outcomes.append((self._clock(), False))
        self._prune()
        if len(self._outcomes) < self.minimum_throughput:
            return False
        return self._rate() >= self.failure_rate_threshold

    def _reset_counters(self) -> None:
        self._outcomes.clear()

    def _prune(self) -> None:
        horizon = self._clock() - self.sampling_seconds
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()

    def _rate(self) -> float:
        if not self._outcomes:
            return 0.0
        failures = sum(1 for _, succeeded in self._outcomes if not succeeded)
        return failures / len(self._outcomes)
