"""Core execution circuit breaker implementation."""

import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import ParamSpec, TypeVar

from sdx_sentinels.circuit_breaker.exceptions import TrippedError
from sdx_sentinels.circuit_breaker.metrics import BreakerListener
from sdx_sentinels.circuit_breaker.state import (
    ALWAYS_ELIGIBLE,
    BreakerSnapshot,
    BreakerState,
    CircuitState,
    _utcnow,
)
from sdx_sentinels.circuit_breaker.strategies import TripStrategy
from sdx_sentinels.errors import MissingArgumentError
from sdx_sentinels.logging import log_exception, log_info

T = TypeVar("T")
P = ParamSpec("P")

_logger = logging.getLogger(__name__)


class ExecutionCircuitBreaker:
    """Stateful proxy around a dangerous sync or async operation.

    The breaker is closed while :class:`BreakerState` is untripped. A failure
    that the strategy classifies as trip-worthy trips it and schedules the
    next probe ``strategy.retry_interval()`` seconds later. While tripped,
    calls are rejected with :class:`TrippedError` until the probe time has
    passed; after that calls go through as half-open probes, and the first
    success closes the breaker again.

    Notes:
        ``has_attempted_since_trip`` is set by every call that passes the gate
        and is never cleared. A breaker tripped manually before its first
        call therefore keeps rejecting until ``reset()`` is called.
    """

    def __init__(
        self,
        name: str,
        strategy: TripStrategy,
        *,
        listeners: Sequence[BreakerListener] | None = None,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Build an execution circuit breaker.

        Args:
            name: Breaker name used in trip errors and log events.
            strategy: Decides which failures trip the breaker and how long
                to wait before probing.
            listeners: Optional listener hooks for breaker events.
            now_fn: Clock returning timezone-aware UTC datetimes.

        Raises:
            MissingArgumentError: If ``name`` is empty or ``strategy`` is
                ``None``.
        """
        if not name:
            raise MissingArgumentError("name cannot be empty.")
        if strategy is None:
            raise MissingArgumentError("strategy cannot be None.")
        self._state = BreakerState(name, now_fn=now_fn)
        self._strategy = strategy
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._now_fn = now_fn
        self._lock = threading.Lock()
        self._next_retry_at = ALWAYS_ELIGIBLE
        self._has_attempted_since_trip = False

    @property
    def name(self) -> str:
        return self._state.name

    @property
    def is_tripped(self) -> bool:
        return self._state.is_tripped

    @property
    def next_retry_at(self) -> datetime:
        """Return the earliest instant a half-open probe may run."""
        return self._next_retry_at

    @property
    def has_attempted_since_trip(self) -> bool:
        return self._has_attempted_since_trip

    @property
    def state(self) -> CircuitState:
        """Return the state the next call would observe."""
        if not self._state.is_tripped:
            return CircuitState.CLOSED
        if self._is_probe_eligible():
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def snapshot(self) -> BreakerSnapshot:
        """Return a point-in-time view of the breaker."""
        return BreakerSnapshot(
            name=self.name,
            state=self.state,
            tripped_at=self._state.tripped_at,
            next_retry_at=self._next_retry_at,
        )

    def test(self) -> None:
        """Raise :class:`TrippedError` if the breaker is tripped."""
        self._state.test()

    def trip(self) -> bool:
        """Trip the breaker without touching the retry window."""
        tripped = self._state.trip()
        if tripped:
            self._on_tripped()
        return tripped

    def reset(self) -> bool:
        """Force-close the breaker and clear the retry window.

        Returns:
            ``True`` if the breaker was tripped and is now closed.
        """
        with self._lock:
            self._next_retry_at = ALWAYS_ELIGIBLE
        was_reset = self._state.reset()
        if was_reset:
            log_info(_logger, "circuit_breaker.reset", breaker=self.name)
            self._emit_state_change(CircuitState.OPEN, CircuitState.CLOSED)
        return was_reset

    def execute(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke a callable under circuit breaker protection.

        Args:
            func: Dangerous callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            TrippedError: When the breaker is tripped and no probe is due.
            Exception: The original exception from ``func``, unchanged.
        """
        self._attempt_to_proceed()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            self._record_failure(exc)
            raise
        finally:
            self._has_attempted_since_trip = True
        self.reset()
        return result

    async def execute_async(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Same semantics as :meth:`execute`; only the call to ``func`` is
        awaited, the gate and bookkeeping around it are synchronous.
        """
        self._attempt_to_proceed()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            self._record_failure(exc)
            raise
        finally:
            self._has_attempted_since_trip = True
        self.reset()
        return result

    def _is_probe_eligible(self) -> bool:
        with self._lock:
            return (
                self._has_attempted_since_trip
                and self._now_fn() >= self._next_retry_at
            )

    def _attempt_to_proceed(self) -> None:
        try:
            self._state.test()
        except TrippedError:
            if not self._is_probe_eligible():
                self._emit_call_rejected()
                raise
            log_info(_logger, "circuit_breaker.probe_allowed", breaker=self.name)

    def _record_failure(self, exc: Exception) -> None:
        if not self._strategy.should_trip(exc):
            return
        retry_interval = self._strategy.retry_interval()
        with self._lock:
            self._next_retry_at = self._now_fn() + timedelta(seconds=retry_interval)
        if self._state.trip():
            self._on_tripped()

    def _on_tripped(self) -> None:
        log_info(
            _logger,
            "circuit_breaker.tripped",
            breaker=self.name,
            next_retry_at=self._next_retry_at.isoformat(),
        )
        self._emit_state_change(CircuitState.CLOSED, CircuitState.OPEN)

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                log_exception(
                    _logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_state_change",
                )

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                log_exception(
                    _logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_call_rejected",
                )
