"""Exception taxonomy for synthesis, execution and resilience failures"""
from typing import Optional


class QuerySynthesisError(Exception):
    """Base class for all service errors"""


class CircuitBreakerOpenError(QuerySynthesisError):
    """Raised when a breaker rejects a call; means "try again shortly"."""

    def __init__(self, breaker_name: str, retry_after: float = 0.0):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open; retry after {retry_after:.1f}s"
        )


class QueryExecutionError(QuerySynthesisError):
    """Database error carrying the engine's error code when known"""

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        error_name: Optional[str] = None
    ):
        self.error_code = error_code
        self.error_name = error_name
        super().__init__(message)


class UnsafeQueryError(QuerySynthesisError):
    """SQL rejected by the read-only guard"""


class AIServiceError(QuerySynthesisError):
    """Failure reported by the AI provider"""


class AIConnectionError(AIServiceError):
    """AI provider unreachable; retryable"""


class EmptyAIResponseError(AIServiceError):
    """AI provider returned no content"""


class MetadataRetrievalError(QuerySynthesisError):
    """Business metadata could not be retrieved"""
