# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
import random
from unittest.mock import Mock, patch

import pytest

from restify.runtime.cancellation import CallCancelledError, CancellationToken
from restify.runtime.errors import (
    RequestTimeoutError,
    RetryableTransportError,
    RetryExhaustedError,
    TransportClosedError,
    TransportError,
)
from restify.runtime.retry import (
    ExponentialBackoffRetryPolicy,
    FixedDelayRetryPolicy,
    NoRetryPolicy,
    TimeBoundRetryPolicy,
    retry_on_transport_errors,
)


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sleeps():
    with patch.object(CancellationToken, "sleep") as mock_sleep:
        yield mock_sleep


def _failing(*errors):
    return Mock(side_effect=list(errors))


def test_no_retry_executes_once_and_propagates():
    operation = Mock(side_effect=TransportError("boom"))

    with pytest.raises(TransportError):
        NoRetryPolicy().retry(operation)

    assert operation.call_count == 1


def test_no_retry_returns_value():
    assert NoRetryPolicy().retry(lambda: "ok") == "ok"


def test_no_retry_observes_cancellation_before_running():
    token = CancellationToken()
    token.cancel()
    operation = Mock(return_value="ok")

    with pytest.raises(CallCancelledError):
        NoRetryPolicy().retry(operation, token)

    operation.assert_not_called()


def test_always_failing_operation_runs_max_attempts_and_raises_last(sleeps):
    errors = [TransportError("1"), TransportError("2"), TransportError("3")]
    operation = _failing(*errors)
    policy = FixedDelayRetryPolicy(10_000, delay_millis=5, max_attempts=3)

    with pytest.raises(TransportError) as exc_info:
        policy.retry(operation)

    assert exc_info.value is errors[-1]
    assert operation.call_count == 3
    assert sleeps.call_count == 2
    sleeps.assert_called_with(0.005)


def test_non_retryable_error_raises_without_sleeping(sleeps):
    operation = Mock(side_effect=TransportError("fatal"))
    policy = FixedDelayRetryPolicy(
        10_000, max_attempts=1, retry_on=lambda error: False
    )

    with pytest.raises(TransportError):
        policy.retry(operation)

    assert operation.call_count == 1
    sleeps.assert_not_called()


def test_predicate_stops_retries_midway(sleeps):
    operation = _failing(RetryableTransportError("flaky"), TransportError("fatal"))
    policy = FixedDelayRetryPolicy(
        10_000, max_attempts=5, retry_on=retry_on_transport_errors
    )

    with pytest.raises(TransportError, match="fatal"):
        policy.retry(operation)

    assert operation.call_count == 2
    assert sleeps.call_count == 1


def test_success_after_failures_returns_value(sleeps):
    operation = _failing(
        RetryableTransportError("a"), RequestTimeoutError("b"), "done"
    )
    policy = FixedDelayRetryPolicy(10_000, delay_millis=0, max_attempts=5)

    assert policy.retry(operation) == "done"
    assert operation.call_count == 3


def test_closed_transport_is_not_retried_by_default(sleeps):
    operation = Mock(side_effect=TransportClosedError("closed"))

    with pytest.raises(TransportClosedError):
        TimeBoundRetryPolicy(10_000).retry(operation)

    assert operation.call_count == 1


def test_delay_is_capped_to_remaining_budget(sleeps):
    clock = FakeClock()
    operation = _failing(TransportError("a"), "ok")
    policy = FixedDelayRetryPolicy(
        1_000, delay_millis=5_000, max_attempts=3, clock=clock
    )

    assert policy.retry(operation) == "ok"
    sleeps.assert_called_once_with(1.0)


def test_deadline_raises_last_error():
    clock = FakeClock()
    calls = []

    def operation():
        calls.append(1)
        clock.advance(0.6)
        raise TransportError(f"attempt {len(calls)}")

    with patch.object(CancellationToken, "sleep"):
        with pytest.raises(TransportError, match="attempt 2"):
            TimeBoundRetryPolicy(1_000, delay_millis=0, clock=clock).retry(
                operation
            )

    assert len(calls) == 2


def test_exhausted_budget_without_error_raises_retry_exhausted():
    # The budget is already spent by the time the first attempt would start.
    clock = Mock(side_effect=[100.0, 102.0])
    policy = TimeBoundRetryPolicy(1_000, clock=clock)
    operation = Mock(return_value="never")

    with pytest.raises(RetryExhaustedError, match="without recorded error"):
        policy.retry(operation)

    operation.assert_not_called()


def test_cancellation_from_operation_is_not_retried(sleeps):
    operation = Mock(side_effect=CallCancelledError("stop"))

    with pytest.raises(CallCancelledError):
        FixedDelayRetryPolicy(10_000, max_attempts=5).retry(operation)

    assert operation.call_count == 1
    sleeps.assert_not_called()


def test_cancellation_before_attempt():
    token = CancellationToken()
    token.cancel()
    operation = Mock(return_value="ok")

    with pytest.raises(CallCancelledError):
        FixedDelayRetryPolicy(10_000).retry(operation, token)

    operation.assert_not_called()


def test_cancellation_is_observed_before_backoff_sleep():
    token = CancellationToken()

    def operation():
        token.cancel()
        raise TransportError("boom")

    with patch.object(CancellationToken, "sleep") as sleep:
        with pytest.raises(CallCancelledError):
            FixedDelayRetryPolicy(10_000, max_attempts=5).retry(operation, token)

    sleep.assert_not_called()


def test_cancel_wakes_backoff_sleep():
    token = CancellationToken()
    attempts = []

    def operation():
        attempts.append(1)
        raise TransportError("boom")

    with patch.object(token._event, "wait", side_effect=lambda timeout: True):
        with pytest.raises(CallCancelledError):
            FixedDelayRetryPolicy(10_000, delay_millis=60_000).retry(
                operation, token
            )

    assert len(attempts) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"time_budget_millis": 0},
        {"time_budget_millis": -5},
        {"time_budget_millis": 100, "max_attempts": 0},
        {"time_budget_millis": 100, "delay_millis": -1},
    ],
)
def test_fixed_delay_rejects_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        FixedDelayRetryPolicy(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"multiplier": 0.5},
        {"jitter_factor": -0.1},
        {"base_delay_millis": -1},
        {"max_attempts": 0},
    ],
)
def test_exponential_backoff_rejects_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        ExponentialBackoffRetryPolicy(**kwargs)


def test_exponential_backoff_base_delays_grow_and_cap():
    policy = ExponentialBackoffRetryPolicy(
        base_delay_millis=100, multiplier=2.0, max_delay_millis=500
    )

    assert [policy.base_delay_for_attempt(n) for n in range(1, 6)] == [
        100,
        200,
        400,
        500,
        500,
    ]
    assert policy.base_delay_for_attempt(10_000) == 500


@pytest.mark.parametrize("seed", range(20))
@pytest.mark.parametrize("attempt", [1, 2, 3, 6])
def test_exponential_backoff_jitter_stays_within_bounds(seed, attempt):
    policy = ExponentialBackoffRetryPolicy(
        base_delay_millis=100,
        multiplier=3.0,
        max_delay_millis=5_000,
        jitter_factor=0.25,
        rng=random.Random(seed),
    )
    delay = min(100 * 3.0 ** (attempt - 1), 5_000)

    value = policy.delay_for_attempt(attempt)

    assert delay * 0.75 <= value <= delay * 1.25
    assert 0 <= value <= 5_000


def test_exponential_backoff_without_jitter_is_deterministic(sleeps):
    operation = _failing(TransportError("a"), TransportError("b"), "ok")
    policy = ExponentialBackoffRetryPolicy(
        max_attempts=3, base_delay_millis=100, jitter_factor=0.0
    )

    assert policy.retry(operation) == "ok"
    assert [c.args[0] for c in sleeps.call_args_list] == [0.1, 0.2]
