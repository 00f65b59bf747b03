import pytest

from research_pipeline.errors import JobNotFound, ValidationError
from research_pipeline.models import ResearchRequest
from research_pipeline.registry import JobRegistry


@pytest.fixture
def registry():
    return JobRegistry()


def _drain(q):
    events = []
    while not q.empty():
        events.append(q.get_nowait())
    return events


def test_create_job_starts_pending(registry):
    job_id = registry.create_job(ResearchRequest(topic="  quantum sensors ", context="ctx"))
    job = registry.get_status(job_id)

    assert job.status == "pending"
    assert job.progress == 0
    assert job.topic == "quantum sensors"
    assert job.request.topic == "quantum sensors"


def test_blank_topic_allocates_no_job(registry):
    with pytest.raises(ValidationError):
        registry.create_job(ResearchRequest(topic=""))
    assert registry._jobs == {}


def test_unknown_job_raises(registry):
    with pytest.raises(JobNotFound):
        registry.get_status("missing")
    assert registry.exists("missing") is False


def test_progress_never_moves_backwards(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))

    assert registry.update_progress(job_id, 20, "Researching") is True
    assert registry.update_progress(job_id, 15, "late heartbeat") is False
    assert registry.update_progress(job_id, 20, "duplicate") is False

    job = registry.get_status(job_id)
    assert job.progress == 20
    assert job.message == "Researching"
    assert job.status == "processing"


def test_complete_is_terminal_and_status_idempotent(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    registry.update_progress(job_id, 50)

    assert registry.complete(job_id, "# Report") is True
    first = registry.get_status(job_id)
    second = registry.get_status(job_id)

    assert first.status == "completed"
    assert first.progress == 100
    assert first.result == "# Report"
    assert first == second


def test_writes_after_terminal_are_ignored(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    registry.fail(job_id, "Rate limit exceeded. Please try again later.")

    assert registry.complete(job_id, "late document") is False
    assert registry.fail(job_id, "other error") is False
    assert registry.update_progress(job_id, 99) is False
    assert registry.mark_processing(job_id) is False

    job = registry.get_status(job_id)
    assert job.status == "failed"
    assert job.error == "Rate limit exceeded. Please try again later."
    assert job.result is None


def test_get_status_returns_a_copy(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    snapshot = registry.get_status(job_id)
    snapshot.progress = 77

    assert registry.get_status(job_id).progress == 0


def test_subscriber_receives_progress_then_complete(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    q = registry.subscribe(job_id)

    registry.update_progress(job_id, 5, "Initializing research request...")
    registry.complete(job_id, "doc")

    events = _drain(q)
    assert [e["event"] for e in events] == ["progress", "progress", "complete"]
    assert events[0]["data"] == {"percent": 5, "status": "Initializing research request..."}
    assert events[1]["data"]["percent"] == 100
    assert events[2]["data"] == {"research": "doc"}


def test_late_subscriber_gets_current_state(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    registry.update_progress(job_id, 40, "Analyzing")
    registry.fail(job_id, "boom")

    events = _drain(registry.subscribe(job_id))
    assert [e["event"] for e in events] == ["progress", "error"]
    assert events[1]["data"] == {"error": "boom"}


def test_unsubscribed_queue_stops_receiving(registry):
    job_id = registry.create_job(ResearchRequest(topic="t"))
    q = registry.subscribe(job_id)
    registry.unsubscribe(job_id, q)

    registry.update_progress(job_id, 10)
    assert q.empty()
