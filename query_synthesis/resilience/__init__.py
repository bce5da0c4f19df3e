"""Retry, circuit breaker and timeout policies plus the service decorators using them"""
from .circuit_breaker import (
    BreakerState,
    CircuitBreaker,
    ConsecutiveFailureCircuitBreaker,
    FailureRateCircuitBreaker,
)
from .policies import ResiliencePolicy, is_transient_ai_error, is_transient_db_error

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "ConsecutiveFailureCircuitBreaker",
    "FailureRateCircuitBreaker",
    "ResiliencePolicy",
    "is_transient_ai_error",
    "is_transient_db_error",
]
