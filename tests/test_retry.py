"""
Tests for RetryPolicy, RetryState and call_with_retry.
"""

import pytest

from csv2gremlin import GraphConnectionError, RemoteRejection, RetryPolicy, RetryState
from csv2gremlin.retry import RetryPhase, call_with_retry


def flaky(*outcomes):
    """Callable raising or returning ``outcomes`` in order."""
    remaining = list(outcomes)
    calls = []

    def _fn():
        calls.append(1)
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    _fn.calls = calls
    return _fn


def test_policy_backoff_grows_and_caps():
    policy = RetryPolicy(max_attempts=5, base_ms=100, max_ms=350, use_jitter=False)

    assert policy.backoff_ms(0) == 100
    assert policy.backoff_ms(1) == 200
    assert policy.backoff_ms(2) == 350
    assert policy.delay(1) == pytest.approx(0.2)


def test_policy_jitter_stays_within_backoff():
    policy = RetryPolicy(base_ms=100, max_ms=100)
    for _ in range(20):
        assert 0.0 <= policy.delay(0) <= 0.1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"base_ms": -1},
        {"multiplier": 0.5},
        {"base_ms": 500, "max_ms": 100},
    ],
)
def test_policy_validation(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_success_on_first_attempt():
    result, state = call_with_retry(flaky("v1"), RetryPolicy(), sleep=lambda s: None)

    assert result == "v1"
    assert state.attempts == 1
    assert state.phase is RetryPhase.SUCCEEDED


def test_retries_connection_errors_then_succeeds():
    sleeps = []
    fn = flaky(GraphConnectionError("down"), GraphConnectionError("down"), "v1")
    policy = RetryPolicy(max_attempts=3, base_ms=10, use_jitter=False)

    result, state = call_with_retry(fn, policy, sleep=sleeps.append)

    assert result == "v1"
    assert state.attempts == 3
    assert state.retries == 2
    assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]


def test_gives_up_after_max_attempts():
    fn = flaky(*[GraphConnectionError("down")] * 5)
    policy = RetryPolicy(max_attempts=3, base_ms=0, max_ms=0)

    with pytest.raises(GraphConnectionError) as exc_info:
        call_with_retry(fn, policy, sleep=lambda s: None)

    assert len(fn.calls) == 3
    state = exc_info.value.retry_state
    assert state.attempts == 3
    assert state.phase is RetryPhase.FAILED


def test_rejection_is_not_retried():
    fn = flaky(RemoteRejection("bad"), "never")

    with pytest.raises(RemoteRejection) as exc_info:
        call_with_retry(fn, RetryPolicy(max_attempts=5), sleep=lambda s: None)

    assert len(fn.calls) == 1
    assert exc_info.value.retry_state.attempts == 1


def test_non_retryable_connection_error_is_not_retried():
    fn = flaky(GraphConnectionError("bad credentials", retryable=False), "never")

    with pytest.raises(GraphConnectionError):
        call_with_retry(fn, RetryPolicy(max_attempts=5), sleep=lambda s: None)

    assert len(fn.calls) == 1


def test_state_transitions():
    state = RetryState(RetryPolicy(max_attempts=2, base_ms=0, max_ms=0))
    assert state.phase is RetryPhase.ATTEMPTING

    state.start_attempt()
    assert state.fail(GraphConnectionError("down")) == 0.0
    assert state.phase is RetryPhase.RETRYING
    assert repr(state) == "<RetryState retrying(1)>"

    state.start_attempt()
    assert state.fail(GraphConnectionError("down")) is None
    assert state.phase is RetryPhase.FAILED
    assert state.done

    with pytest.raises(RuntimeError):
        state.start_attempt()
