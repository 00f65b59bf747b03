"""Data models for the research pipeline."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field


JobStatus = Literal["pending", "processing", "completed", "failed"]
TERMINAL_STATUSES = ("completed", "failed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- request / job ----------

class ResearchRequest(BaseModel):
    topic: str = ""
    context: str = ""
    sources: List[str] = Field(default_factory=lambda: ["recent", "scholar"])
    audience: Optional[str] = None
    content_type: Optional[str] = None
    platform: Optional[str] = None
    language: str = "en"
    company_name: Optional[str] = Field(
        default=None,
        description="Named entity the research should target (company, creator, brand)",
    )


class ResearchJob(BaseModel):
    id: str
    topic: str
    context: str = ""
    status: JobStatus = "pending"
    progress: int = 0
    message: str = ""
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    request: Optional[ResearchRequest] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class SubtaskPrompt(BaseModel):
    index: int
    angle: str = Field(..., description="Short key for the research angle")
    title: str
    prompt: str
    degraded_prompt: str


class Decomposition(BaseModel):
    subtasks: List[SubtaskPrompt]
    recombination_template: str


class SubtaskResult(BaseModel):
    index: int
    angle: str = ""
    text: str
    degraded: bool = False
    attempts: int = 0


class ProgressEvent(BaseModel):
    percent: int = Field(..., ge=0, le=100)
    message: str = ""


# ---------- HTTP payloads ----------

class JobCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")


class JobStatusResponse(BaseModel):
    status: JobStatus
    progress: Optional[int] = None
    message: Optional[str] = None
    research: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: ResearchJob) -> "JobStatusResponse":
        return cls(
            status=job.status,
            progress=job.progress,
            message=job.message or None,
            research=job.result if job.status == "completed" else None,
            error=job.error if job.status == "failed" else None,
        )


# ---------- LangGraph state ----------

class PipelineState(TypedDict, total=False):
    job_id: str
    request: ResearchRequest
    decomposition: Decomposition
    subtask_results: List[SubtaskResult]
    document: str
    timings: Dict[str, Any]
