"""FastAPI server: research job creation, status polling and SSE streaming.

Routes
------
POST /api/research               create a job            -> {jobId}
GET  /api/research?jobId=...     job status              -> {status, progress, research?, error?}
GET  /api/research/{job_id}      job status (path form)
POST /api/research/stream        create a job and stream its events
GET  /api/research/{job_id}/stream   stream events of an existing job
GET  /api/health, /api/config
"""

import asyncio
import json
import logging
import os
from queue import Empty, Queue
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .config import API_KEY_ENV, AVAILABLE_MODELS, get_config
from .errors import ConfigurationError, JobNotFound, ResearchPipelineError, ValidationError
from .models import JobCreatedResponse, JobStatusResponse, ResearchRequest
from .providers import list_providers
from .service import ResearchService

load_dotenv()

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0
POLL_INTERVAL = 0.1
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}

app = FastAPI(
    title="Research Pipeline API",
    description="Decomposed research generation with job polling and real-time streaming",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        get_config().frontend_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── job service ─────────────────────────────────────────────────────
service = ResearchService()


# ── error handlers ──────────────────────────────────────────────────

@app.exception_handler(ValidationError)
async def _validation_error(_: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc), "type": exc.__class__.__name__})


@app.exception_handler(RequestValidationError)
async def _request_validation_error(_: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request format. Please check your request body."},
    )


@app.exception_handler(ConfigurationError)
async def _configuration_error(_: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": exc.__class__.__name__})


@app.exception_handler(JobNotFound)
async def _job_not_found(_: Request, exc: JobNotFound):
    return JSONResponse(status_code=404, content={"error": str(exc), "type": exc.__class__.__name__})


# ── helpers ──────────────────────────────────────────────────────────

def serialize_event(event_type: str, data: dict) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event_type}\ndata: {payload}\n\n"


async def job_event_stream(job_id: str, q: Queue) -> AsyncIterator[str]:
    """Relay registry events for *job_id* until a terminal event."""
    idle = 0.0
    try:
        while True:
            try:
                evt = q.get_nowait()
            except Empty:
                await asyncio.sleep(POLL_INTERVAL)
                idle += POLL_INTERVAL
                if idle >= KEEPALIVE_SECONDS:
                    idle = 0.0
                    yield ": keep-alive\n\n"
                continue
            idle = 0.0
            yield serialize_event(evt["event"], evt["data"])
            if evt["event"] in ("complete", "error"):
                break
    finally:
        service.registry.unsubscribe(job_id, q)


async def _single_error_stream(message: str) -> AsyncIterator[str]:
    yield serialize_event("error", {"error": message})


# ── routes ───────────────────────────────────────────────────────────

@app.post("/api/research", response_model=JobCreatedResponse)
def create_research_job(request: ResearchRequest):
    job_id = service.create_job(request)
    return JobCreatedResponse(job_id=job_id)


@app.get("/api/research", response_model=JobStatusResponse, response_model_exclude_none=True)
def get_research_status_query(job_id: Optional[str] = Query(default=None, alias="jobId")):
    if not job_id:
        raise ValidationError("jobId is required")
    return JobStatusResponse.from_job(service.get_status(job_id))


@app.get("/api/research/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
def get_research_status(job_id: str):
    return JobStatusResponse.from_job(service.get_status(job_id))


@app.post("/api/research/stream")
def stream_new_research(request: ResearchRequest):
    try:
        job_id = service.create_job(request)
    except ResearchPipelineError as exc:
        logger.warning("Streamed research request rejected: %s", exc)
        return StreamingResponse(
            _single_error_stream(str(exc)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    q = service.registry.subscribe(job_id)
    return StreamingResponse(
        job_event_stream(job_id, q),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Job-Id": job_id},
    )


@app.get("/api/research/{job_id}/stream")
def stream_research(job_id: str):
    q = service.registry.subscribe(job_id)
    return StreamingResponse(
        job_event_stream(job_id, q),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.get("/api/config")
async def get_app_config():
    """Return current provider configuration (no secrets)."""
    cfg = get_config()
    return {
        "provider": cfg.provider,
        "model": cfg.model,
        "completion_timeout": cfg.completion_timeout,
        "subtask_concurrency": cfg.subtask_concurrency,
        "available_providers": list_providers(),
        "available_models": AVAILABLE_MODELS,
        "role_overrides": {
            role: {"model": rc.model, "max_tokens": rc.max_tokens}
            for role, rc in cfg.roles.items()
        },
    }


@app.get("/api/health")
async def health_check():
    cfg = get_config()
    return {
        "status": "healthy",
        "version": app.version,
        "provider": cfg.provider,
        "model": cfg.model,
        "env_check": {
            f"{name}_key": bool(os.environ.get(env)) for name, env in API_KEY_ENV.items()
        },
    }
