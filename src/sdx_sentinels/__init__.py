"""Failure-isolation primitives: circuit breakers, policies and backoff."""

from sdx_sentinels.backoff import BackoffPolicy, Jitter, calculate_backoff
from sdx_sentinels.circuit_breaker import (
    BreakerState,
    CircuitBreakerError,
    ExecutionCircuitBreaker,
    ImmediateTripStrategy,
    ThresholdTripStrategy,
    TrippedError,
)
from sdx_sentinels.errors import MissingArgumentError, OutOfRangeError
from sdx_sentinels.policy import (
    CircuitBreakerPolicy,
    CircuitBreakerPolicyConfig,
    DefaultCircuitBreakerPolicy,
    ExceptionTypeTripReasonAuthority,
    TripReasonAuthority,
)
from sdx_sentinels.sentinel import ServiceSentinel, TogglableServiceSentinel

__all__ = [
    "BackoffPolicy",
    "BreakerState",
    "CircuitBreakerError",
    "CircuitBreakerPolicy",
    "CircuitBreakerPolicyConfig",
    "DefaultCircuitBreakerPolicy",
    "ExceptionTypeTripReasonAuthority",
    "ExecutionCircuitBreaker",
    "ImmediateTripStrategy",
    "Jitter",
    "MissingArgumentError",
    "OutOfRangeError",
    "ServiceSentinel",
    "ThresholdTripStrategy",
    "TogglableServiceSentinel",
    "TripReasonAuthority",
    "TrippedError",
    "calculate_backoff",
]
