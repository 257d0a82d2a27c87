import pytest

from services.errors import OracleError, OracleErrorKind
from services.retry import Failure, RetryPolicy, Success, retry_with_backoff


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr("services.retry.time.sleep", lambda s: calls.append(s))
    return calls


def _scripted(*effects):
    effects = list(effects)
    calls = []

    def operation():
        calls.append(1)
        effect = effects.pop(0)
        if isinstance(effect, Exception):
            raise effect
        return effect

    operation.calls = calls
    return operation


def _rate_limited():
    return OracleError("429 Too Many Requests", kind=OracleErrorKind.RATE_LIMITED)


def test_success_on_second_attempt_sleeps_once(sleeps):
    op = _scripted(_rate_limited(), "ok")
    outcome = retry_with_backoff(op)

    assert outcome == Success(value="ok", attempts=2)
    assert sleeps == [1.0]


def test_first_try_success_never_sleeps(sleeps):
    outcome = retry_with_backoff(_scripted({"results": []}))
    assert isinstance(outcome, Success)
    assert outcome.attempts == 1
    assert sleeps == []


def test_exhausted_attempts_return_last_error(sleeps):
    op = _scripted(_rate_limited(), _rate_limited(), _rate_limited())
    outcome = retry_with_backoff(op, RetryPolicy(max_attempts=3, initial_delay=1.0))

    assert isinstance(outcome, Failure)
    assert outcome.attempts == 3
    assert outcome.error.kind is OracleErrorKind.RATE_LIMITED
    # no delay after the final attempt
    assert sleeps == [1.0, 2.0]
    assert len(op.calls) == 3


def test_non_retryable_error_fails_immediately(sleeps):
    op = _scripted(OracleError("bad key", kind=OracleErrorKind.AUTH_FAILURE), "unused")
    outcome = retry_with_backoff(op)

    assert isinstance(outcome, Failure)
    assert outcome.error.kind is OracleErrorKind.AUTH_FAILURE
    assert outcome.attempts == 1
    assert sleeps == []


def test_plain_exceptions_are_classified(sleeps):
    op = _scripted(RuntimeError("quota exceeded for model"), "ok")
    outcome = retry_with_backoff(op)
    assert outcome == Success(value="ok", attempts=2)

    outcome = retry_with_backoff(_scripted(RuntimeError("something odd")))
    assert isinstance(outcome, Failure)
    assert outcome.error.kind is OracleErrorKind.GENERIC


def test_custom_predicate_and_backoff_callback(sleeps):
    backoffs = []
    policy = RetryPolicy(max_attempts=2, initial_delay=0.5, is_retryable=lambda e: e.kind is OracleErrorKind.TIMEOUT)
    op = _scripted(OracleError("slow", kind=OracleErrorKind.TIMEOUT), "ok")

    outcome = retry_with_backoff(op, policy, on_backoff=lambda attempt, delay, error: backoffs.append((attempt, delay)))

    assert isinstance(outcome, Success)
    assert backoffs == [(1, 0.5)]
    assert sleeps == [0.5]


def test_delay_doubles():
    policy = RetryPolicy(initial_delay=1.0)
    assert [policy.delay_for(k) for k in range(4)] == [1.0, 2.0, 4.0, 8.0]
