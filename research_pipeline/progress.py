"""Progress publishing for a single job.

Milestones
----------
  5   job accepted
  15  research query built
  20  subtasks decomposed
  20-90  interpolated as subtasks finish
  95  finalising (synthesis)
  100 completed (written by the registry on completion)

While a stage waits on the completion service, a ``ProgressHeartbeat``
ticks progress forward inside the stage's band so observers see motion
even though the vendor reports none. The heartbeat is a context manager:
leaving the ``with`` block stops its thread on every exit path.
"""

import logging
import threading
from typing import Optional

from .registry import JobRegistry

logger = logging.getLogger(__name__)

ACCEPTED = 5
QUERY_BUILT = 15
DECOMPOSED = 20
SUBTASKS_DONE = 90
FINALIZING = 95


def status_message(percent: int) -> str:
    if percent < 30:
        return "Querying knowledge databases..."
    if percent < 50:
        return "Analyzing information sources..."
    if percent < 70:
        return "Synthesizing research findings..."
    if percent < 85:
        return "Organizing research insights..."
    return "Finalizing research document..."


def subtask_milestone(completed: int, total: int) -> int:
    """Progress once *completed* of *total* subtasks are done."""
    if total <= 0:
        return SUBTASKS_DONE
    span = SUBTASKS_DONE - DECOMPOSED
    return DECOMPOSED + int(span * completed / total)


class ProgressPublisher:
    """Monotonic progress writer for one job."""

    def __init__(self, registry: JobRegistry, job_id: str):
        self.registry = registry
        self.job_id = job_id
        self._lock = threading.Lock()
        self._last = 0

    @property
    def current(self) -> int:
        with self._lock:
            return self._last

    def publish(self, percent: int, message: Optional[str] = None) -> bool:
        """Write progress if it moves forward. Lower or equal values, and any
        write after the job is terminal, are no-ops."""
        percent = max(0, min(100, int(percent)))
        with self._lock:
            if percent <= self._last:
                return False
            applied = self.registry.update_progress(
                self.job_id, percent, message or status_message(percent)
            )
            if applied:
                self._last = percent
            return applied

    def heartbeat(self, ceiling: int, interval: float = 2.0) -> "ProgressHeartbeat":
        return ProgressHeartbeat(self, ceiling=ceiling, interval=interval)


class ProgressHeartbeat:
    """Scheduled tick that nudges progress toward ``ceiling``.

    Each tick covers a fifth of the remaining distance (at least 1%), so the
    value approaches the ceiling without reaching it. ``raise_ceiling`` lets
    the owner widen the band as real milestones are hit.
    """

    def __init__(self, publisher: ProgressPublisher, ceiling: int, interval: float = 2.0):
        self.publisher = publisher
        self.interval = max(0.01, float(interval))
        self._ceiling = ceiling
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def raise_ceiling(self, value: int) -> None:
        if value > self._ceiling:
            self._ceiling = value

    def tick(self) -> bool:
        current = self.publisher.current
        remaining = self._ceiling - current
        if remaining <= 1:
            return False
        self.ticks += 1
        return self.publisher.publish(current + max(1, remaining // 5))

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Progress heartbeat for job %s failed", self.publisher.job_id)
                return

    def start(self) -> "ProgressHeartbeat":
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._run,
                name=f"heartbeat-{self.publisher.job_id[:8]}",
                daemon=True,
            )
            self._thread.start()
        return self

    def cancel(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1.0)

    def __enter__(self) -> "ProgressHeartbeat":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()
