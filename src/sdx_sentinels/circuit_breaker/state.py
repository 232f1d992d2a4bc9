"""Circuit breaker state primitives."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from sdx_sentinels.circuit_breaker.exceptions import TrippedError
from sdx_sentinels.errors import MissingArgumentError

# Retry gates initialised to this instant are always eligible.
ALWAYS_ELIGIBLE = datetime.min.replace(tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for logging.

    Attributes:
        name: Breaker name.
        state: Derived breaker state.
        tripped_at: Timestamp when the breaker tripped, if tripped.
        next_retry_at: Earliest instant a half-open probe may run.
    """

    name: str
    state: CircuitState
    tripped_at: datetime | None
    next_retry_at: datetime


class BreakerState:
    """Binary tripped/untripped flag with the time it last tripped.

    ``trip`` and ``reset`` are idempotent and report whether they changed
    anything, so concurrent callers can tell which of them performed the
    transition.
    """

    def __init__(
        self,
        name: str,
        *,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Create an untripped breaker state.

        Args:
            name: Breaker name used in trip error messages.
            now_fn: Clock returning timezone-aware UTC datetimes.

        Raises:
            MissingArgumentError: If ``name`` is empty.
        """
        if not name:
            raise MissingArgumentError("name cannot be empty.")
        self._name = name
        self._now_fn = now_fn
        self._lock = threading.Lock()
        self._tripped = False
        self._tripped_at: datetime | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_tripped(self) -> bool:
        """Return whether the breaker is currently tripped."""
        return self._tripped

    @property
    def tripped_at(self) -> datetime | None:
        """Return when the breaker tripped, or ``None`` while untripped."""
        return self._tripped_at

    def trip(self) -> bool:
        """Trip the breaker.

        Returns:
            ``True`` if this call moved the breaker from untripped to tripped.
        """
        with self._lock:
            if self._tripped:
                return False
            self._tripped = True
            self._tripped_at = self._now_fn()
            return True

    def reset(self) -> bool:
        """Reset the breaker.

        Returns:
            ``True`` if this call moved the breaker from tripped to untripped.
        """
        with self._lock:
            if not self._tripped:
                return False
            self._tripped = False
            self._tripped_at = None
            return True

    def test(self) -> None:
        """Raise the trip error if the breaker is tripped.

        Raises:
            TrippedError: When the breaker is tripped.
        """
        if self._tripped:
            raise self.get_trip_error()

    def get_trip_error(self) -> TrippedError:
        """Build the trip error without performing the guard check."""
        now = self._now_fn()
        tripped_at = self._tripped_at
        elapsed = 0.0 if tripped_at is None else (now - tripped_at).total_seconds()
        return TrippedError(self._name, tripped_for=elapsed)
