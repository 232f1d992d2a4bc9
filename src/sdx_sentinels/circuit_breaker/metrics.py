"""Observability hooks for circuit breakers."""

from typing import Protocol

from sdx_sentinels.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for execution circuit breaker events.

    Notes:
        Hooks run synchronously on the calling thread, outside the breaker's
        locks. Exceptions raised by a listener are logged and suppressed.
    """

    def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle a trip (``CLOSED`` to ``OPEN``) or a reset back to ``CLOSED``."""

    def on_call_rejected(self, name: str) -> None:
        """Handle a call rejected because the breaker is tripped."""
