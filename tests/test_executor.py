import threading
import time

import pytest

from research_pipeline.backoff import BackoffPolicy
from research_pipeline.decomposer import decompose
from research_pipeline.errors import TransportError, UnretryableServiceError
from research_pipeline.executor import SubtaskExecutor
from research_pipeline.models import ResearchRequest

from conftest import FakeProvider, angle_of


@pytest.fixture
def subtasks():
    return decompose(ResearchRequest(topic="electric bikes")).subtasks


def _executor(client, sleeps, **kwargs):
    return SubtaskExecutor(client, "electric bikes", sleep=sleeps.append, **kwargs)


def test_two_transient_failures_then_success_is_not_degraded(make_client, subtasks, sleeps):
    failures = {"left": 2}

    def responder(prompt, max_tokens):
        if failures["left"]:
            failures["left"] -= 1
            return TransportError("gateway reset")
        return "full facts section"

    client = make_client(FakeProvider(responder), policy=BackoffPolicy(attempts=1))
    result = _executor(client, sleeps).run_subtask(subtasks[0])

    assert result.degraded is False
    assert result.text == "full facts section"
    assert result.attempts == 3
    assert sleeps == [4.0, 8.0]


def test_exhausted_subtask_uses_degraded_prompt(make_client, subtasks, sleeps):
    def responder(prompt, max_tokens):
        if angle_of(prompt):
            return TransportError("timeout")
        return "short essentials"

    provider = FakeProvider(responder)
    client = make_client(provider, policy=BackoffPolicy(attempts=1))
    result = _executor(client, sleeps).run_subtask(subtasks[1])

    assert result.degraded is True
    assert result.text == "short essentials"
    assert result.attempts == 4
    assert provider.calls[-1]["prompt"] == subtasks[1].degraded_prompt
    assert provider.calls[-1]["max_tokens"] == 800


def test_exhausted_degraded_attempt_yields_placeholder(make_client, subtasks, sleeps):
    client = make_client(
        FakeProvider(lambda p, m: TransportError("unreachable")),
        policy=BackoffPolicy(attempts=1),
    )
    result = _executor(client, sleeps).run_subtask(subtasks[2])

    assert result.degraded is True
    assert result.index == 2
    assert "Section 3 of 3" in result.text
    assert '"electric bikes"' in result.text


def test_unretryable_error_propagates(make_client, subtasks, sleeps):
    provider = FakeProvider(lambda p, m: UnretryableServiceError("quota exhausted", status_code=402))
    client = make_client(provider)

    with pytest.raises(UnretryableServiceError):
        _executor(client, sleeps).run_subtask(subtasks[0])
    assert len(provider.calls) == 1


def test_run_all_sequential_keeps_index_order(make_client, subtasks, sleeps):
    provider = FakeProvider(lambda p, m: f"section about {angle_of(p)}")
    seen = []
    results = _executor(make_client(provider), sleeps).run_all(subtasks, on_result=seen.append)

    assert [r.index for r in results] == [0, 1, 2]
    assert [r.index for r in seen] == [0, 1, 2]
    assert [r.text for r in results] == [
        "section about facts",
        "section about audience",
        "section about competitive",
    ]
    assert [angle_of(p) for p in provider.prompts()] == ["facts", "audience", "competitive"]


def test_run_all_parallel_returns_results_by_index(make_client, subtasks, sleeps):
    active = {"now": 0, "peak": 0}
    lock = threading.Lock()
    delays = {"facts": 0.15, "audience": 0.05, "competitive": 0.1}

    def responder(prompt, max_tokens):
        angle = angle_of(prompt)
        with lock:
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
        time.sleep(delays[angle])
        with lock:
            active["now"] -= 1
        return f"section about {angle}"

    seen = []
    executor = _executor(make_client(FakeProvider(responder)), sleeps, concurrency=3)
    results = executor.run_all(subtasks, on_result=seen.append)

    assert [r.index for r in results] == [0, 1, 2]
    assert sorted(r.index for r in seen) == [0, 1, 2]
    assert active["peak"] > 1


def test_run_all_parallel_fails_fast_on_unretryable_error(make_client, subtasks, sleeps):
    release = threading.Event()

    def responder(prompt, max_tokens):
        if angle_of(prompt) == "facts":
            return UnretryableServiceError("invalid api key", status_code=401)
        release.wait(3.0)
        return f"section about {angle_of(prompt)}"

    executor = _executor(make_client(FakeProvider(responder)), sleeps, concurrency=3)
    started = time.monotonic()
    try:
        with pytest.raises(UnretryableServiceError):
            executor.run_all(subtasks)
        assert time.monotonic() - started < 1.5
    finally:
        release.set()
