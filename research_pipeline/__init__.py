"""Research generation pipeline.

A research request is split into three fixed-angle subtasks, each answered
by the completion service with retry and graceful degradation, then merged
into one markdown report. Jobs run asynchronously; callers poll or stream
their progress.
"""

from .errors import (
    CompletionError,
    ConfigurationError,
    JobFailedError,
    JobNotFound,
    PollingFailed,
    PollingTimeout,
    ResearchPipelineError,
    ValidationError,
)
from .models import ResearchRequest

__version__ = "1.0.0"

__all__ = [
    "CompletionError",
    "ConfigurationError",
    "JobFailedError",
    "JobNotFound",
    "PollingFailed",
    "PollingTimeout",
    "ResearchPipelineError",
    "ResearchRequest",
    "ValidationError",
]
