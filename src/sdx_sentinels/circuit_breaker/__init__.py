"""In-process circuit breakers for sync and async operations.

Key behavior notes:
  - ``BreakerState`` is the shared primitive: a tripped flag plus trip time,
    with idempotent ``trip``/``reset``.
  - ``ExecutionCircuitBreaker`` wraps a callable. Which failures trip it is
    decided by a pluggable ``TripStrategy``: ``ImmediateTripStrategy`` trips
    on every qualifying failure, ``ThresholdTripStrategy`` only once
    qualifying failures exceed a threshold inside a rolling window.
  - Once the retry interval has elapsed, calls pass through as half-open
    probes until one succeeds; a single success fully closes the breaker.
  - State is per-instance and in-memory only.
"""

from sdx_sentinels.circuit_breaker.breaker import ExecutionCircuitBreaker
from sdx_sentinels.circuit_breaker.exceptions import (
    CircuitBreakerError,
    TrippedError,
)
from sdx_sentinels.circuit_breaker.metrics import BreakerListener
from sdx_sentinels.circuit_breaker.state import (
    BreakerSnapshot,
    BreakerState,
    CircuitState,
)
from sdx_sentinels.circuit_breaker.strategies import (
    ImmediateTripStrategy,
    ThresholdTripStrategy,
    TripStrategy,
    exception_type_detector,
)

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "BreakerState",
    "CircuitBreakerError",
    "CircuitState",
    "ExecutionCircuitBreaker",
    "ImmediateTripStrategy",
    "ThresholdTripStrategy",
    "TripStrategy",
    "TrippedError",
    "exception_type_detector",
]
