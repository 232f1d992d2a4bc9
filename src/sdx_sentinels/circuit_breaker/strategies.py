"""Trip-decision strategies for execution circuit breakers.

A strategy answers two questions for :class:`ExecutionCircuitBreaker`:
whether a failure should trip the breaker, and how long to wait before a
half-open probe may run.
"""

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from sdx_sentinels.circuit_breaker.state import ALWAYS_ELIGIBLE, _utcnow
from sdx_sentinels.errors import MissingArgumentError

FailureDetector = Callable[[BaseException], bool]
RetryIntervalCalculator = Callable[[], float]
ErrorCountGetter = Callable[[], int]
ErrorIntervalGetter = Callable[[], float]


class TripStrategy(Protocol):
    """Capability plugged into an execution circuit breaker."""

    def should_trip(self, error: BaseException) -> bool:
        """Return whether ``error`` should trip the breaker."""

    def retry_interval(self) -> float:
        """Return seconds to wait after a trip before probing."""


def exception_type_detector(
    expected: tuple[type[BaseException], ...] = (Exception,),
    excluded: tuple[type[BaseException], ...] = (),
) -> FailureDetector:
    """Build a failure detector from exception types.

    Excluded types win over expected types, so a subclass can be carved out
    of a broad expected base class.
    """

    def _detect(error: BaseException) -> bool:
        if isinstance(error, excluded):
            return False
        return isinstance(error, expected)

    return _detect


def _require(value: object, name: str) -> None:
    if value is None:
        raise MissingArgumentError(f"{name} cannot be None.")


class ImmediateTripStrategy:
    """Trip on every failure the detector classifies as trip-worthy."""

    def __init__(
        self,
        failure_detector: FailureDetector,
        retry_interval_calculator: RetryIntervalCalculator,
    ) -> None:
        _require(failure_detector, "failure_detector")
        _require(retry_interval_calculator, "retry_interval_calculator")
        self._failure_detector = failure_detector
        self._retry_interval_calculator = retry_interval_calculator

    def should_trip(self, error: BaseException) -> bool:
        return self._failure_detector(error)

    def retry_interval(self) -> float:
        return self._retry_interval_calculator()


class ThresholdTripStrategy:
    """Trip once qualifying failures exceed a threshold within a window.

    The window starts at the first qualifying failure after the previous
    window expired and lasts ``error_interval_getter()`` seconds. Failures
    that the detector rejects never touch the window.
    """

    def __init__(
        self,
        failure_detector: FailureDetector,
        retry_interval_calculator: RetryIntervalCalculator,
        error_count_getter: ErrorCountGetter,
        error_interval_getter: ErrorIntervalGetter,
        *,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Build a threshold strategy.

        Args:
            failure_detector: Classifies errors as trip-worthy.
            retry_interval_calculator: Seconds to wait before probing.
            error_count_getter: Failures tolerated per window; the breaker
                trips on the failure that exceeds it.
            error_interval_getter: Window length in seconds.
            now_fn: Clock returning timezone-aware UTC datetimes.

        Raises:
            MissingArgumentError: If any collaborator is ``None``.
        """
        _require(failure_detector, "failure_detector")
        _require(retry_interval_calculator, "retry_interval_calculator")
        _require(error_count_getter, "error_count_getter")
        _require(error_interval_getter, "error_interval_getter")
        self._failure_detector = failure_detector
        self._retry_interval_calculator = retry_interval_calculator
        self._error_count_getter = error_count_getter
        self._error_interval_getter = error_interval_getter
        self._now_fn = now_fn
        self._lock = threading.Lock()
        self._error_count = 0
        self._window_ends_at = ALWAYS_ELIGIBLE

    @property
    def error_count(self) -> int:
        """Return qualifying failures counted in the current window."""
        return self._error_count

    @property
    def window_ends_at(self) -> datetime:
        return self._window_ends_at

    def should_trip(self, error: BaseException) -> bool:
        """Count ``error`` against the window and report whether to trip.

        Raises:
            MissingArgumentError: If ``error`` is ``None``.
        """
        if error is None:
            raise MissingArgumentError("error cannot be None.")
        if not self._failure_detector(error):
            return False

        with self._lock:
            now = self._now_fn()
            if now > self._window_ends_at:
                self._error_count = 0
                self._window_ends_at = now + timedelta(
                    seconds=self._error_interval_getter()
                )
            self._error_count += 1
            return self._error_count > self._error_count_getter()

    def retry_interval(self) -> float:
        return self._retry_interval_calculator()
