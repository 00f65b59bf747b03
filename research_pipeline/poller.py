"""Caller-side helpers: submit a research job over HTTP and wait for it.

``HttpJobClient`` wraps the job API with ``httpx``; ``JobPoller`` polls a
job's status with jittered exponential backoff and reports synthesized
progress to local observers, since the status endpoint may lag the stream.
"""

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from .backoff import POLL_BACKOFF, BackoffPolicy
from .errors import (
    ConfigurationError,
    JobFailedError,
    PollingFailed,
    PollingTimeout,
    ResearchPipelineError,
    ValidationError,
)
from .models import ProgressEvent

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_FAILURE_BUDGET = 3

ProgressObserver = Callable[[ProgressEvent], None]

_ERROR_TYPES = {
    "ValidationError": ValidationError,
    "ConfigurationError": ConfigurationError,
}


def estimated_progress(attempt: int) -> int:
    """Progress to show while the job reports none: 8, 11, 14 ... capped at 80."""
    return min(80, 5 + attempt * 3)


def _reported_progress(status: Dict[str, Any]) -> Optional[int]:
    """Server-reported progress, or None when the job reports none."""
    try:
        value = int(status.get("progress") or 0)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def polling_message(percent: int) -> str:
    if percent < 30:
        return "Gathering initial research data..."
    if percent < 60:
        return "Analyzing research findings..."
    if percent < 90:
        return "Compiling comprehensive results..."
    return "Finalizing research document..."


class HttpJobClient:
    """Thin HTTP client for the research job API.

    Pass an existing ``httpx.Client`` (a FastAPI ``TestClient`` works too) to
    share connection settings; otherwise one is created for *base_url*.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def create_job(self, topic: str, context: str = "", **fields: Any) -> str:
        payload = {"topic": topic, "context": context}
        payload.update({k: v for k, v in fields.items() if v is not None})
        resp = self._client.post("/api/research", json=payload)
        if resp.status_code >= 400:
            raise self._api_error(resp)
        job_id = resp.json().get("jobId")
        if not job_id:
            raise ResearchPipelineError("No job ID returned from the research API")
        return job_id

    def get_status(self, job_id: str) -> Dict[str, Any]:
        """Fetch the raw status payload.

        Network failures surface as ``httpx.TransportError``, non-2xx
        answers as ``httpx.HTTPStatusError`` and a body that is not a JSON
        object as ``ValueError``; the poller counts all three against its
        failure budget.
        """
        resp = self._client.get(
            f"/api/research/{job_id}", headers={"Cache-Control": "no-cache"}
        )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected status payload: {payload!r:.200}")
        return payload

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpJobClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _api_error(resp: httpx.Response) -> ResearchPipelineError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = body.get("error") or f"API error: {resp.status_code} - {resp.text}"
        if resp.status_code == 400:
            return ValidationError(message)
        return _ERROR_TYPES.get(body.get("type"), ResearchPipelineError)(message)


class JobPoller:
    """Wait for a job to reach a terminal state."""

    def __init__(
        self,
        client: HttpJobClient,
        policy: BackoffPolicy = POLL_BACKOFF,
        failure_budget: int = DEFAULT_FAILURE_BUDGET,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.policy = policy
        self.failure_budget = max(1, failure_budget)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._observers: List[ProgressObserver] = []
        self._last_percent = 0

    def add_observer(self, fn: ProgressObserver) -> None:
        self._observers.append(fn)

    def _report(self, percent: int, message: str) -> None:
        # observers only ever see progress move forward
        percent = max(0, min(100, int(percent)))
        if percent <= self._last_percent:
            return
        self._last_percent = percent
        event = ProgressEvent(percent=percent, message=message)
        for fn in list(self._observers):
            try:
                fn(event)
            except Exception:
                logger.exception("Progress observer failed")

    def await_job(self, job_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
        """Poll until *job_id* completes and return its research document.

        Raises ``JobFailedError`` if the job fails, ``PollingFailed`` after
        ``failure_budget`` consecutive unreachable polls and ``PollingTimeout``
        once *max_attempts* polls have passed without a terminal status.
        """
        self._last_percent = 0
        self._report(5, "Starting research job...")
        consecutive_failures = 0

        for attempt in range(1, max_attempts + 1):
            self._sleep(self.policy.delay(attempt, self._rng))
            try:
                status = self.client.get_status(job_id)
            except (httpx.TransportError, httpx.HTTPStatusError, ValueError) as exc:
                consecutive_failures += 1
                logger.warning(
                    "Status poll %s for job %s failed (%s/%s): %s",
                    attempt, job_id, consecutive_failures, self.failure_budget, exc,
                )
                if consecutive_failures >= self.failure_budget:
                    raise PollingFailed(
                        f"Lost contact with research job {job_id} after "
                        f"{consecutive_failures} consecutive failed polls: {exc}"
                    ) from exc
                continue

            consecutive_failures = 0
            state = status.get("status")
            if state == "completed":
                research = status.get("research")
                if not research:
                    raise JobFailedError(job_id, "Job completed without research content")
                self._report(100, "Research completed successfully!")
                return research
            if state == "failed":
                raise JobFailedError(job_id, status.get("error") or "Unknown error")

            reported = _reported_progress(status)
            percent = reported if reported is not None else estimated_progress(attempt)
            self._report(percent, status.get("message") or polling_message(percent))
            logger.debug("Job %s is %s (poll %s/%s)", job_id, state, attempt, max_attempts)

        raise PollingTimeout(
            f"Research job {job_id} did not finish within {max_attempts} polls"
        )


def research(
    topic: str,
    context: str = "",
    *,
    client: Optional[HttpJobClient] = None,
    on_progress: Optional[ProgressObserver] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
    **fields: Any,
) -> str:
    """Submit a research job and block until its document is ready."""
    owned = client is None
    client = client or HttpJobClient()
    try:
        job_id = client.create_job(topic, context, **fields)
        logger.info("Research job %s created for %r", job_id, topic)
        poller = JobPoller(client, sleep=sleep)
        if on_progress is not None:
            poller.add_observer(on_progress)
        return poller.await_job(job_id, max_attempts=max_attempts)
    finally:
        if owned:
            client.close()
