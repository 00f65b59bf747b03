"""In-memory job registry.

Holds every ``ResearchJob`` keyed by id. One lock guards the table; each
job has a single writer (its worker thread) while any number of readers poll
``get_status``. Writes that would move a job backwards, or touch it after a
terminal state, are ignored.

Streaming callers ``subscribe`` to a job and receive named events on a
queue: ``progress``, then exactly one of ``complete`` / ``error``.
"""

import logging
import threading
import uuid
from queue import Queue
from typing import Dict, List, Optional

from .decomposer import validate_topic
from .errors import JobNotFound
from .events import emit
from .models import ResearchJob, ResearchRequest, utcnow

logger = logging.getLogger(__name__)


def _progress_event(job: ResearchJob) -> dict:
    return {"event": "progress", "data": {"percent": job.progress, "status": job.message}}


def _terminal_event(job: ResearchJob) -> dict:
    if job.status == "completed":
        return {"event": "complete", "data": {"research": job.result}}
    return {"event": "error", "data": {"error": job.error}}


class JobRegistry:
    def __init__(self) -> None:
        self._jobs: Dict[str, ResearchJob] = {}
        self._subscribers: Dict[str, List[Queue]] = {}
        self._lock = threading.Lock()

    # ── lifecycle ────────────────────────────────────────────────────

    def create_job(self, request: ResearchRequest) -> str:
        """Register a pending job. Raises ``ValidationError`` for a blank
        topic before any id is allocated."""
        topic = validate_topic(request.topic)
        job_id = str(uuid.uuid4())
        job = ResearchJob(
            id=job_id,
            topic=topic,
            context=request.context or "",
            status="pending",
            progress=0,
            request=request.model_copy(update={"topic": topic}),
        )
        with self._lock:
            self._jobs[job_id] = job
            self._subscribers[job_id] = []
        logger.info("Research job %s created for topic '%s'", job_id, topic)
        return job_id

    def get_status(self, job_id: str) -> ResearchJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            return job.model_copy(deep=True)

    def exists(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def mark_processing(self, job_id: str) -> bool:
        with self._lock:
            job = self._require(job_id)
            if job.status != "pending":
                logger.debug("Job %s already %s; ignoring processing transition", job_id, job.status)
                return False
            job.status = "processing"
            job.updated_at = utcnow()
        return True

    def update_progress(self, job_id: str, percent: int, message: str = "") -> bool:
        """Advance progress. Returns False when the write was suppressed
        (terminal job, or not strictly higher than the current value)."""
        percent = max(0, min(100, int(percent)))
        with self._lock:
            job = self._require(job_id)
            if job.is_terminal or percent <= job.progress:
                return False
            if job.status == "pending":
                job.status = "processing"
            job.progress = percent
            job.message = message
            job.updated_at = utcnow()
            event = _progress_event(job)
            queues = list(self._subscribers.get(job_id, []))
        self._broadcast(queues, event)
        emit({"type": "progress", "job_id": job_id, "percent": percent, "message": message})
        return True

    def complete(self, job_id: str, result: str) -> bool:
        return self._finish(job_id, "completed", result=result)

    def fail(self, job_id: str, error: str) -> bool:
        return self._finish(job_id, "failed", error=error or "Unknown error")

    def _finish(
        self,
        job_id: str,
        status: str,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        with self._lock:
            job = self._require(job_id)
            if job.is_terminal:
                logger.warning(
                    "Job %s already %s; ignoring transition to %s", job_id, job.status, status
                )
                return False
            job.status = status
            if status == "completed":
                job.result = result
                job.progress = 100
                job.message = "Research completed successfully!"
            else:
                job.error = error
                job.message = "Research generation failed"
            job.updated_at = utcnow()
            events = [_progress_event(job), _terminal_event(job)] if status == "completed" else [_terminal_event(job)]
            queues = list(self._subscribers.get(job_id, []))
        for event in events:
            self._broadcast(queues, event)
        emit({"type": f"job-{status}", "job_id": job_id, "error": error})
        logger.info("Research job %s %s", job_id, status)
        return True

    # ── streaming subscribers ────────────────────────────────────────

    def subscribe(self, job_id: str) -> Queue:
        """Return a queue fed with this job's events. A late subscriber
        first receives the current progress, and the terminal event if the
        job is already done."""
        q: Queue = Queue()
        with self._lock:
            job = self._require(job_id)
            self._subscribers[job_id].append(q)
            if job.progress > 0:
                q.put(_progress_event(job))
            if job.is_terminal:
                q.put(_terminal_event(job))
        return q

    def unsubscribe(self, job_id: str, q: Queue) -> None:
        with self._lock:
            queues = self._subscribers.get(job_id, [])
            if q in queues:
                queues.remove(q)

    def _broadcast(self, queues: List[Queue], event: dict) -> None:
        for q in queues:
            q.put(event)

    def _require(self, job_id: str) -> ResearchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job
