"""Circuit breaker policies driven by the caller rather than a wrapped call.

Callers guard their own work with :meth:`CircuitBreakerPolicy.throw_if_tripped`
and report the outcome with :meth:`CircuitBreakerPolicy.notify_request_finished`.
A :class:`TripReasonAuthority` decides which outcomes count toward tripping.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Generic, Protocol, TypeVar

from sdx_sentinels.circuit_breaker.exceptions import TrippedError
from sdx_sentinels.circuit_breaker.state import (
    ALWAYS_ELIGIBLE,
    BreakerState,
    _utcnow,
)
from sdx_sentinels.errors import MissingArgumentError, OutOfRangeError
from sdx_sentinels.logging import log_info

ContextT = TypeVar("ContextT")
ContextT_contra = TypeVar("ContextT_contra", contravariant=True)

OnTerminatingRequest = Callable[[], None]
OnRequestToOpen = Callable[[], None]

_logger = logging.getLogger(__name__)


class TripReasonAuthority(Protocol[ContextT_contra]):
    """Decide whether a finished request is a reason to trip."""

    def is_reason_for_trip(
        self, context: ContextT_contra, error: BaseException | None
    ) -> bool:
        """Return whether ``error`` raised under ``context`` should count."""


class ExceptionTypeTripReasonAuthority:
    """Trip on requests that failed with one of the expected exception types.

    A request that finished without an error is never a reason to trip.
    """

    def __init__(
        self,
        expected: tuple[type[BaseException], ...] = (Exception,),
        excluded: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._expected = expected
        self._excluded = excluded

    def is_reason_for_trip(self, context: object, error: BaseException | None) -> bool:
        if error is None or isinstance(error, self._excluded):
            return False
        return isinstance(error, self._expected)


class CircuitBreakerPolicyConfig:
    """Mutable configuration for :class:`DefaultCircuitBreakerPolicy`.

    Attributes:
        retry_interval: Seconds to wait after a trip before allowing a probe.
        failures_allowed_before_trip: Consecutive qualifying failures
            tolerated; the next one trips the policy.
    """

    def __init__(
        self,
        *,
        retry_interval: float = 0.25,
        failures_allowed_before_trip: int = 0,
    ) -> None:
        self.retry_interval = retry_interval
        self.failures_allowed_before_trip = failures_allowed_before_trip

    @property
    def failures_allowed_before_trip(self) -> int:
        return self._failures_allowed_before_trip

    @failures_allowed_before_trip.setter
    def failures_allowed_before_trip(self, value: int) -> None:
        if value < 0:
            raise OutOfRangeError("failures_allowed_before_trip must be >= 0")
        self._failures_allowed_before_trip = value

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(retry_interval={self.retry_interval!r}, "
            f"failures_allowed_before_trip={self._failures_allowed_before_trip!r})"
        )


class CircuitBreakerPolicy(ABC, Generic[ContextT]):
    """Base class for caller-driven circuit breaker policies.

    Attributes:
        on_terminating_request: Optional hook invoked right before
            ``throw_if_tripped`` raises.
        on_request_to_open: Optional hook invoked when a finished request is
            classified as a reason to trip, before the trip is attempted.
    """

    def __init__(self, trip_reason_authority: TripReasonAuthority[ContextT]) -> None:
        if trip_reason_authority is None:
            raise MissingArgumentError("trip_reason_authority cannot be None.")
        self._trip_reason_authority = trip_reason_authority
        self.on_terminating_request: OnTerminatingRequest | None = None
        self.on_request_to_open: OnRequestToOpen | None = None

    def throw_if_tripped(self, context: ContextT) -> None:
        """Raise the trip error if the policy rejects requests right now.

        Raises:
            TrippedError: When the underlying breaker is open.
        """
        is_open, error = self.is_circuit_breaker_open(context)
        if not is_open:
            return
        if self.on_terminating_request is not None:
            self.on_terminating_request()
        assert error is not None
        raise error

    def notify_request_finished(
        self, context: ContextT, error: BaseException | None = None
    ) -> None:
        """Report the outcome of a request guarded by this policy."""
        try:
            if self._trip_reason_authority.is_reason_for_trip(context, error):
                if self.on_request_to_open is not None:
                    self.on_request_to_open()
                self.try_to_trip_circuit_breaker(context)
            else:
                self.on_successful_request(context)
        finally:
            self.on_notified(context)

    @abstractmethod
    def is_circuit_breaker_open(
        self, context: ContextT
    ) -> tuple[bool, TrippedError | None]:
        """Return whether requests are rejected, with the error to raise."""

    @abstractmethod
    def try_to_trip_circuit_breaker(self, context: ContextT) -> bool:
        """Count a qualifying failure; return ``True`` if it tripped."""

    @abstractmethod
    def on_successful_request(self, context: ContextT) -> None:
        """Handle a request that was not a reason to trip."""

    @abstractmethod
    def on_notified(self, context: ContextT) -> None:
        """Run after every notification, whatever its outcome."""


class DefaultCircuitBreakerPolicy(CircuitBreakerPolicy[ContextT]):
    """Trip after a run of consecutive qualifying failures.

    Once tripped, requests are rejected until ``config.retry_interval``
    seconds have passed. After that, checks pass until the next
    notification, which either closes the policy (success) or re-trips it and
    restarts the retry interval (failure).
    """

    def __init__(
        self,
        circuit_breaker_identifier: str,
        config: CircuitBreakerPolicyConfig,
        trip_reason_authority: TripReasonAuthority[ContextT],
        *,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Build a default policy.

        Args:
            circuit_breaker_identifier: Name of the underlying breaker.
            config: Retry interval and failure allowance.
            trip_reason_authority: Classifies finished requests.
            now_fn: Clock returning timezone-aware UTC datetimes.

        Raises:
            MissingArgumentError: If the identifier is empty or a
                collaborator is ``None``.
            OutOfRangeError: If the config allows a negative failure count.
        """
        super().__init__(trip_reason_authority)
        if not circuit_breaker_identifier:
            raise MissingArgumentError("circuit_breaker_identifier cannot be empty.")
        if config is None:
            raise MissingArgumentError("config cannot be None.")
        if config.failures_allowed_before_trip < 0:
            raise OutOfRangeError("failures_allowed_before_trip must be >= 0")
        self._breaker = BreakerState(circuit_breaker_identifier, now_fn=now_fn)
        self._config = config
        self._now_fn = now_fn
        self._lock = threading.Lock()
        self._should_retry = False
        self._consecutive_failures = 0
        self._next_retry_at = ALWAYS_ELIGIBLE

    @property
    def config(self) -> CircuitBreakerPolicyConfig:
        return self._config

    @property
    def is_tripped(self) -> bool:
        return self._breaker.is_tripped

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def next_retry_at(self) -> datetime:
        return self._next_retry_at

    def is_circuit_breaker_open(
        self, context: ContextT
    ) -> tuple[bool, TrippedError | None]:
        if not self._breaker.is_tripped:
            return False, None
        with self._lock:
            if self._next_retry_at <= self._now_fn() and not self._should_retry:
                return False, None
        return True, self._breaker.get_trip_error()

    def on_successful_request(self, context: ContextT) -> None:
        with self._lock:
            self._consecutive_failures = 0
        if self._breaker.reset():
            log_info(
                _logger,
                "circuit_breaker_policy.reset",
                breaker=self._breaker.name,
            )

    def on_notified(self, context: ContextT) -> None:
        with self._lock:
            self._should_retry = False

    def try_to_trip_circuit_breaker(self, context: ContextT) -> bool:
        with self._lock:
            self._consecutive_failures += 1
            consecutive_failures = self._consecutive_failures
            if consecutive_failures <= self._config.failures_allowed_before_trip:
                return False
            self._next_retry_at = self._now_fn() + timedelta(
                seconds=self._config.retry_interval
            )
        if self._breaker.trip():
            log_info(
                _logger,
                "circuit_breaker_policy.tripped",
                breaker=self._breaker.name,
                consecutive_failures=consecutive_failures,
            )
        return True
