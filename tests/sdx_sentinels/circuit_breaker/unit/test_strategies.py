from __future__ import annotations

import threading

import pytest

from sdx_sentinels.circuit_breaker import (
    ImmediateTripStrategy,
    ThresholdTripStrategy,
    exception_type_detector,
)
from sdx_sentinels.errors import MissingArgumentError


class _Transient(Exception):
    pass


class _Ignored(_Transient):
    pass


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, _Transient)


def _threshold(clock, *, threshold: int = 1, interval: float = 60.0):
    return ThresholdTripStrategy(
        _is_transient,
        lambda: 5.0,
        lambda: threshold,
        lambda: interval,
        now_fn=clock.now,
    )


def test_immediate_strategy_delegates_to_collaborators() -> None:
    strategy = ImmediateTripStrategy(_is_transient, lambda: 12.5)

    assert strategy.should_trip(_Transient()) is True
    assert strategy.should_trip(ValueError()) is False
    assert strategy.retry_interval() == 12.5


@pytest.mark.parametrize(
    "args",
    [
        (None, lambda: 1.0),
        (_is_transient, None),
    ],
)
def test_immediate_strategy_requires_collaborators(args) -> None:
    with pytest.raises(MissingArgumentError):
        ImmediateTripStrategy(*args)


def test_threshold_strategy_trips_after_threshold_exceeded(clock) -> None:
    strategy = _threshold(clock, threshold=1)

    assert strategy.should_trip(_Transient()) is False
    assert strategy.should_trip(_Transient()) is True
    assert strategy.error_count == 2


def test_threshold_strategy_single_failure_does_not_trip(clock) -> None:
    strategy = _threshold(clock, threshold=1)

    assert strategy.should_trip(_Transient()) is False
    assert strategy.error_count == 1


def test_threshold_strategy_ignores_non_qualifying_errors(clock) -> None:
    strategy = _threshold(clock, threshold=0)

    assert strategy.should_trip(ValueError("not ours")) is False
    assert strategy.error_count == 0
    assert strategy.window_ends_at.year == 1


def test_threshold_strategy_window_expiry_restarts_count(clock) -> None:
    strategy = _threshold(clock, threshold=1, interval=10.0)

    assert strategy.should_trip(_Transient()) is False
    clock.advance(10.0)
    # Still inside the window: "now > window end" is strict.
    assert strategy.should_trip(_Transient()) is True

    clock.advance(0.001)
    assert strategy.should_trip(_Transient()) is False
    assert strategy.error_count == 1
    assert (strategy.window_ends_at - clock.now()).total_seconds() == 10.0


def test_threshold_strategy_window_starts_at_first_failure(clock) -> None:
    strategy = _threshold(clock, threshold=5, interval=30.0)
    started_at = clock.now()

    strategy.should_trip(_Transient())
    clock.advance(5.0)
    strategy.should_trip(_Transient())

    assert (strategy.window_ends_at - started_at).total_seconds() == 30.0


def test_threshold_strategy_rejects_missing_error(clock) -> None:
    strategy = _threshold(clock)

    with pytest.raises(MissingArgumentError):
        strategy.should_trip(None)  # type: ignore[arg-type]


def test_threshold_strategy_requires_collaborators() -> None:
    with pytest.raises(MissingArgumentError, match="error_interval_getter"):
        ThresholdTripStrategy(_is_transient, lambda: 1.0, lambda: 1, None)  # type: ignore[arg-type]


def test_threshold_strategy_counts_concurrent_failures(clock) -> None:
    strategy = _threshold(clock, threshold=1_000)
    barrier = threading.Barrier(8)

    def _fail_many() -> None:
        barrier.wait()
        for _ in range(50):
            strategy.should_trip(_Transient())

    threads = [threading.Thread(target=_fail_many) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert strategy.error_count == 400


def test_exception_type_detector_honours_exclusions() -> None:
    detector = exception_type_detector(expected=(_Transient,), excluded=(_Ignored,))

    assert detector(_Transient()) is True
    assert detector(_Ignored()) is False
    assert detector(RuntimeError()) is False
