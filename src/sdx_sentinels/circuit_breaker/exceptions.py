"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the breaker is tripped.
  - Any other breaker-originated signal, via the common base class.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class TrippedError(CircuitBreakerError):
    """Raised when a call is rejected because the breaker is tripped.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        tripped_for: Seconds elapsed since the breaker tripped.
    """

    def __init__(self, breaker_name: str, tripped_for: float) -> None:
        """Initialize a tripped-breaker exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            tripped_for: Seconds since the breaker tripped.
        """
        self.breaker_name = breaker_name
        self.tripped_for = tripped_for
        super().__init__(
            f"'{breaker_name}' has been tripped for {tripped_for} seconds."
        )
