import random

import pytest

from research_pipeline.backoff import (
    CLIENT_BACKOFF,
    POLL_BACKOFF,
    STAGE_BACKOFF,
    BackoffPolicy,
    retry_call,
)
from research_pipeline.errors import TransportError, UnretryableServiceError


def test_client_backoff_waits_before_each_attempt():
    # delay before attempt k is base * 2^(k-1), capped at 8s
    assert [CLIENT_BACKOFF.delay(k) for k in (2, 3, 4, 5)] == [2.0, 4.0, 8.0, 8.0]


def test_stage_backoff_waits_two_to_the_n():
    assert STAGE_BACKOFF.delay(2) == 4.0
    assert STAGE_BACKOFF.delay(3) == 8.0


def test_poll_backoff_stays_within_jittered_cap():
    rng = random.Random(7)
    for n in range(1, 40):
        wait = POLL_BACKOFF.delay(n, rng)
        base = min(15.0, 2.0 * 1.2 ** (n - 1))
        assert base <= wait <= base + 0.5
    assert POLL_BACKOFF.delay(30, rng) >= 15.0


def test_retry_call_retries_until_success():
    outcomes = [TransportError("reset"), TransportError("reset"), "ok"]
    sleeps = []

    def _fn():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = retry_call(_fn, CLIENT_BACKOFF, retry_on=(TransportError,), sleep=sleeps.append)

    assert result == "ok"
    assert sleeps == [2.0, 4.0]


def test_retry_call_raises_last_error_after_exhaustion():
    calls = []

    def _fn():
        calls.append(1)
        raise TransportError(f"failure {len(calls)}")

    with pytest.raises(TransportError, match="failure 3"):
        retry_call(_fn, BackoffPolicy(attempts=3), retry_on=(TransportError,), sleep=lambda _: None)
    assert len(calls) == 3


def test_retry_call_does_not_retry_other_errors():
    calls = []

    def _fn():
        calls.append(1)
        raise UnretryableServiceError("bad key", status_code=401)

    with pytest.raises(UnretryableServiceError):
        retry_call(_fn, CLIENT_BACKOFF, retry_on=(TransportError,), sleep=lambda _: None)
    assert len(calls) == 1


def test_retry_call_reports_each_retry():
    seen = []

    def _fn():
        if len(seen) < 2:
            raise TransportError("down")
        return "done"

    retry_call(
        _fn,
        CLIENT_BACKOFF,
        retry_on=(TransportError,),
        sleep=lambda _: None,
        on_retry=lambda n, exc, wait: seen.append((n, wait)),
    )
    assert seen == [(1, 2.0), (2, 4.0)]
