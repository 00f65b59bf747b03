"""Exception hierarchy for the research pipeline.

Server side:
  ValidationError / ConfigurationError are raised before a job exists.
  CompletionError and its subclasses come out of the completion client.

Caller side:
  PollingFailed / PollingTimeout / JobFailedError are raised by the poller.
"""

from typing import Optional


class ResearchPipelineError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(ResearchPipelineError):
    """The request is malformed (e.g. empty topic)."""


class ConfigurationError(ResearchPipelineError):
    """Missing credential or unknown provider."""


class JobNotFound(ResearchPipelineError):
    def __init__(self, job_id: str):
        super().__init__(f"Research job not found: {job_id}")
        self.job_id = job_id


# ── completion service ───────────────────────────────────────────────

class CompletionError(ResearchPipelineError):
    """Any failure talking to the completion service."""


class TransportError(CompletionError):
    """Network-level failure. Retryable."""


class CompletionTimeout(TransportError):
    """The call exceeded its wall-clock timeout and was abandoned."""


class UnretryableServiceError(CompletionError):
    """Well-formed error response from the vendor (auth, rate limit, quota)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(CompletionError):
    """The vendor answered but the payload holds no extractable text."""


# ── caller side ──────────────────────────────────────────────────────

class PollingFailed(ResearchPipelineError):
    """The caller lost contact with the job system."""


class PollingTimeout(ResearchPipelineError):
    """The job did not finish within the allowed number of polls."""


class JobFailedError(ResearchPipelineError):
    """The job itself reported status=failed."""

    def __init__(self, job_id: str, error: str):
        super().__init__(f"Research job failed: {error or 'Unknown error'}")
        self.job_id = job_id
        self.error = error


def user_facing_message(exc: BaseException) -> str:
    """Turn a pipeline failure into an actionable message for the caller."""
    if isinstance(exc, CompletionTimeout):
        return "The research request timed out. Please try again with a more specific topic."
    if isinstance(exc, UnretryableServiceError):
        code = exc.status_code
        lower = str(exc).lower()
        if code == 429 or "rate limit" in lower:
            return "Rate limit exceeded. Please try again later."
        if code in (401, 403) or "authentication" in lower:
            return "Authentication error with research service. Please check your API key."
        if code == 402 or "quota" in lower or "credit" in lower:
            return "Research service quota exhausted. Check your billing at the provider's dashboard."
    if isinstance(exc, MalformedResponse):
        return f"The research service returned an unusable response: {exc}"
    return str(exc) or exc.__class__.__name__
