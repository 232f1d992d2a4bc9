from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from tenacity import RetryCallState
from tenacity.wait import wait_base

from sdx_sentinels.errors import OutOfRangeError

CEILING_FOR_MAX_ATTEMPTS = 10


class Jitter(StrEnum):
    """Randomization applied to a computed backoff delay."""

    NONE = "none"
    FULL = "full"
    EQUAL = "equal"


def calculate_backoff(
    attempt: int,
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    jitter: Jitter = Jitter.NONE,
    *,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """Return the exponential backoff delay for one attempt.

    The un-jittered delay is ``min(base_delay * 2 ** (attempt - 1), max_delay)``
    with ``attempt`` clamped to ``max_attempts``. ``Jitter.FULL`` scales it by
    ``r`` and ``Jitter.EQUAL`` by ``0.5 + 0.5 * r``, where ``r`` is a single
    draw from ``random_fn`` in ``[0, 1)``.

    Raises:
        OutOfRangeError: If ``max_attempts`` is outside ``[0, 10]``.
    """
    if max_attempts < 0 or max_attempts > CEILING_FOR_MAX_ATTEMPTS:
        raise OutOfRangeError(
            f"max_attempts must be between 0 and {CEILING_FOR_MAX_ATTEMPTS}"
        )
    if attempt > max_attempts:
        attempt = max_attempts

    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
    next_random_value = random_fn()
    if jitter == Jitter.FULL:
        return delay * next_random_value
    if jitter == Jitter.EQUAL:
        return delay * (0.5 + next_random_value * 0.5)
    return delay


@dataclass(frozen=True)
class BackoffPolicy:
    """Bundled arguments for :func:`calculate_backoff`."""

    max_attempts: int
    base_delay: float
    max_delay: float
    jitter: Jitter = Jitter.NONE

    def __post_init__(self) -> None:
        if self.max_attempts < 0 or self.max_attempts > CEILING_FOR_MAX_ATTEMPTS:
            raise OutOfRangeError(
                f"max_attempts must be between 0 and {CEILING_FOR_MAX_ATTEMPTS}"
            )
        if self.base_delay < 0:
            raise OutOfRangeError("base_delay must be >= 0")
        if self.max_delay < 0:
            raise OutOfRangeError("max_delay must be >= 0")

    def delay_for(
        self,
        attempt: int,
        *,
        random_fn: Callable[[], float] = random.random,
    ) -> float:
        """Return the delay in seconds before retrying after ``attempt``."""
        return calculate_backoff(
            attempt,
            self.max_attempts,
            self.base_delay,
            self.max_delay,
            self.jitter,
            random_fn=random_fn,
        )


class wait_backoff(wait_base):  # noqa: N801 - tenacity naming convention
    """Tenacity wait strategy backed by :class:`BackoffPolicy`.

    Lets callers that already drive retries with tenacity reuse the same
    delay calculation; this package never schedules retries itself.
    """

    def __init__(
        self,
        policy: BackoffPolicy,
        *,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self.random_fn = random_fn

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.delay_for(
            retry_state.attempt_number,
            random_fn=self.random_fn,
        )
