"""In-process event bus for pipeline observability.

Events are plain dicts with a ``type`` key (``llm-call-start``,
``subtask-retry``, ``progress``, ``job-completed`` ...) and usually a
``job_id``. They are emitted from worker threads; a failing listener is
logged and skipped.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Container, Iterator, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[dict], None]

_listeners: List[Listener] = []
_lock = threading.Lock()


def add_listener(fn: Listener):
    with _lock:
        _listeners.append(fn)


def remove_listener(fn: Listener):
    with _lock:
        if fn in _listeners:
            _listeners.remove(fn)


@contextmanager
def listening(
    fn: Listener,
    job_id: Optional[str] = None,
    types: Optional[Container[str]] = None,
) -> Iterator[Listener]:
    """Route events to *fn* for the duration of the block, optionally only
    those of one job and/or of the given types."""

    def _filtered(event: dict) -> None:
        if job_id is not None and event.get("job_id") != job_id:
            return
        if types is not None and event.get("type") not in types:
            return
        fn(event)

    add_listener(_filtered)
    try:
        yield _filtered
    finally:
        remove_listener(_filtered)


def emit(event: dict):
    event.setdefault("timestamp", time.time())
    with _lock:
        listeners = list(_listeners)
    for fn in listeners:
        try:
            fn(event)
        except Exception:
            logger.exception("Event listener %r failed on %s", fn, event.get("type"))
