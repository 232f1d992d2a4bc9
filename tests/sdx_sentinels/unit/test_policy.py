from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import pytest

from sdx_sentinels.circuit_breaker import TrippedError
from sdx_sentinels.errors import MissingArgumentError, OutOfRangeError
from sdx_sentinels.policy import (
    CircuitBreakerPolicyConfig,
    DefaultCircuitBreakerPolicy,
    ExceptionTypeTripReasonAuthority,
)


@dataclass(frozen=True)
class _Request:
    path: str


class _Timeout(Exception):
    pass


class _PathAwareAuthority:
    """Trip on timeouts, except for requests to the health endpoint."""

    def is_reason_for_trip(self, context: _Request, error: BaseException | None) -> bool:
        return isinstance(error, _Timeout) and context.path != "/health"


class _ExplodingAuthority:
    def is_reason_for_trip(self, context: object, error: BaseException | None) -> bool:
        raise RuntimeError("authority failed")


REQUEST = _Request(path="/orders")


def _policy(clock, *, failures_allowed: int = 0, retry_interval: float = 0.25):
    config = CircuitBreakerPolicyConfig(
        retry_interval=retry_interval,
        failures_allowed_before_trip=failures_allowed,
    )
    return DefaultCircuitBreakerPolicy(
        "orders-api",
        config,
        _PathAwareAuthority(),
        now_fn=clock.now,
    )


def test_config_defaults() -> None:
    config = CircuitBreakerPolicyConfig()

    assert config.retry_interval == 0.25
    assert config.failures_allowed_before_trip == 0


def test_config_rejects_negative_failure_allowance() -> None:
    config = CircuitBreakerPolicyConfig()

    with pytest.raises(OutOfRangeError):
        config.failures_allowed_before_trip = -1
    with pytest.raises(OutOfRangeError):
        CircuitBreakerPolicyConfig(failures_allowed_before_trip=-3)
    assert config.failures_allowed_before_trip == 0


def test_single_failure_opens_and_success_closes(clock) -> None:
    policy = _policy(clock, failures_allowed=0)

    policy.notify_request_finished(REQUEST, _Timeout())

    with pytest.raises(TrippedError) as excinfo:
        policy.throw_if_tripped(REQUEST)
    assert excinfo.value.breaker_name == "orders-api"

    policy.notify_request_finished(REQUEST, None)

    assert policy.consecutive_failures == 0
    assert policy.is_tripped is False
    policy.throw_if_tripped(REQUEST)


def test_failures_below_allowance_do_not_trip(clock) -> None:
    policy = _policy(clock, failures_allowed=2)

    policy.notify_request_finished(REQUEST, _Timeout())
    policy.notify_request_finished(REQUEST, _Timeout())
    policy.throw_if_tripped(REQUEST)
    assert policy.try_to_trip_circuit_breaker(REQUEST) is True

    assert policy.consecutive_failures == 3
    assert policy.is_tripped is True


def test_success_resets_consecutive_failures(clock) -> None:
    policy = _policy(clock, failures_allowed=1)

    policy.notify_request_finished(REQUEST, _Timeout())
    policy.notify_request_finished(REQUEST)
    policy.notify_request_finished(REQUEST, _Timeout())

    assert policy.consecutive_failures == 1
    assert policy.is_tripped is False


def test_authority_receives_context(clock) -> None:
    policy = _policy(clock)

    policy.notify_request_finished(_Request(path="/health"), _Timeout())

    assert policy.is_tripped is False


def test_checks_pass_after_retry_interval_until_notified(clock) -> None:
    policy = _policy(clock, retry_interval=1.0)
    policy.notify_request_finished(REQUEST, _Timeout())

    with pytest.raises(TrippedError):
        policy.throw_if_tripped(REQUEST)

    clock.advance(1.0)
    policy.throw_if_tripped(REQUEST)
    policy.throw_if_tripped(REQUEST)
    policy.throw_if_tripped(_Request(path="/invoices"))

    policy.notify_request_finished(REQUEST, _Timeout())
    assert policy.is_tripped is True
    assert (policy.next_retry_at - clock.now()).total_seconds() == 1.0
    with pytest.raises(TrippedError):
        policy.throw_if_tripped(REQUEST)


def test_unreported_request_does_not_keep_policy_open(clock) -> None:
    policy = _policy(clock, retry_interval=1.0)
    policy.notify_request_finished(REQUEST, _Timeout())
    clock.advance(1.0)

    # Let a request through whose caller never reports back.
    policy.throw_if_tripped(REQUEST)
    clock.advance(3600.0)

    policy.throw_if_tripped(REQUEST)
    assert policy.is_tripped is True


def test_non_trip_outcome_closes_policy_after_retry_interval(clock) -> None:
    policy = _policy(clock, retry_interval=1.0)
    policy.notify_request_finished(REQUEST, _Timeout())
    clock.advance(1.0)

    policy.throw_if_tripped(REQUEST)
    policy.notify_request_finished(REQUEST, ValueError("not a trip reason"))

    assert policy.is_tripped is False
    policy.throw_if_tripped(REQUEST)


def test_callbacks_are_invoked(clock) -> None:
    policy = _policy(clock)
    calls: list[str] = []
    policy.on_request_to_open = lambda: calls.append("open")
    policy.on_terminating_request = lambda: calls.append("terminate")

    policy.notify_request_finished(REQUEST, _Timeout())
    with pytest.raises(TrippedError):
        policy.throw_if_tripped(REQUEST)

    assert calls == ["open", "terminate"]


def test_terminating_callback_not_invoked_while_closed(clock) -> None:
    policy = _policy(clock)
    calls: list[str] = []
    policy.on_terminating_request = lambda: calls.append("terminate")

    policy.throw_if_tripped(REQUEST)

    assert calls == []


class _NotifiedRecordingPolicy(DefaultCircuitBreakerPolicy[object]):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.notified: list[object] = []

    def on_notified(self, context: object) -> None:
        super().on_notified(context)
        self.notified.append(context)


def test_on_notified_runs_when_authority_raises(clock) -> None:
    policy = _NotifiedRecordingPolicy(
        "orders-api",
        CircuitBreakerPolicyConfig(retry_interval=1.0),
        _ExplodingAuthority(),
        now_fn=clock.now,
    )
    policy.try_to_trip_circuit_breaker(REQUEST)
    clock.advance(1.0)
    policy.throw_if_tripped(REQUEST)

    with pytest.raises(RuntimeError, match="authority failed"):
        policy.notify_request_finished(REQUEST, _Timeout())

    assert policy.notified == [REQUEST]
    policy.throw_if_tripped(REQUEST)


def test_exception_type_authority() -> None:
    authority = ExceptionTypeTripReasonAuthority(
        expected=(_Timeout,), excluded=(KeyError,)
    )

    assert authority.is_reason_for_trip(REQUEST, _Timeout()) is True
    assert authority.is_reason_for_trip(REQUEST, None) is False
    assert authority.is_reason_for_trip(REQUEST, KeyError("x")) is False
    assert authority.is_reason_for_trip(REQUEST, ValueError()) is False


@pytest.mark.parametrize(
    ("identifier", "config", "authority"),
    [
        ("", CircuitBreakerPolicyConfig(), _PathAwareAuthority()),
        ("orders-api", None, _PathAwareAuthority()),
        ("orders-api", CircuitBreakerPolicyConfig(), None),
    ],
)
def test_constructor_requires_collaborators(identifier, config, authority) -> None:
    with pytest.raises(MissingArgumentError):
        DefaultCircuitBreakerPolicy(identifier, config, authority)


def test_constructor_rejects_negative_allowance_from_duck_typed_config() -> None:
    @dataclass
    class _LooseConfig:
        retry_interval: float = 0.25
        failures_allowed_before_trip: int = -1

    with pytest.raises(OutOfRangeError):
        DefaultCircuitBreakerPolicy(
            "orders-api",
            _LooseConfig(),  # type: ignore[arg-type]
            _PathAwareAuthority(),
        )


def _run_concurrently(target, count: int) -> None:
    barrier = threading.Barrier(count)

    def _worker() -> None:
        barrier.wait()
        target()

    threads = [threading.Thread(target=_worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def test_concurrent_failures_are_counted_exactly(clock) -> None:
    policy = _policy(clock, failures_allowed=1000)

    def _fail_many() -> None:
        for _ in range(50):
            policy.try_to_trip_circuit_breaker(REQUEST)

    _run_concurrently(_fail_many, 16)

    assert policy.consecutive_failures == 800
    assert policy.is_tripped is False


def test_concurrent_failures_trip_exactly_once(
    clock, caplog: pytest.LogCaptureFixture
) -> None:
    policy = _policy(clock, failures_allowed=3)

    with caplog.at_level(logging.INFO, logger="sdx_sentinels.policy"):
        _run_concurrently(lambda: policy.try_to_trip_circuit_breaker(REQUEST), 16)

    tripped = [
        record
        for record in caplog.records
        if record.getMessage() == "circuit_breaker_policy.tripped"
    ]
    assert policy.consecutive_failures == 16
    assert policy.is_tripped is True
    assert len(tripped) == 1


def test_concurrent_successes_and_failures_leave_consistent_state(clock) -> None:
    policy = _policy(clock, failures_allowed=1000)

    def _mixed() -> None:
        for _ in range(50):
            policy.try_to_trip_circuit_breaker(REQUEST)
            policy.on_successful_request(REQUEST)

    _run_concurrently(_mixed, 8)
    policy.on_successful_request(REQUEST)

    assert policy.consecutive_failures == 0
    assert policy.is_tripped is False
