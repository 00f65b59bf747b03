"""Job service: validates requests, registers jobs and runs each one on its
own worker thread."""

import logging
import threading
import time
from typing import Callable, Optional

from .completion import CompletionClient
from .config import AppConfig, get_config
from .decomposer import validate_topic
from .errors import CompletionError, user_facing_message
from .events import listening
from .graph import build_graph
from .models import PipelineState, ResearchJob, ResearchRequest
from .progress import ACCEPTED, ProgressPublisher
from .registry import JobRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AppConfig], CompletionClient]


def _default_client_factory(cfg: AppConfig) -> CompletionClient:
    return CompletionClient.from_config(cfg)


class ResearchService:
    def __init__(
        self,
        registry: Optional[JobRegistry] = None,
        config: Optional[AppConfig] = None,
        client_factory: ClientFactory = _default_client_factory,
        sleep: Callable[[float], None] = time.sleep,
        background: bool = True,
    ):
        self.registry = registry or JobRegistry()
        self._config = config
        self._client_factory = client_factory
        self._sleep = sleep
        self._background = background

    @property
    def config(self) -> AppConfig:
        return self._config or get_config()

    def create_job(self, request: ResearchRequest) -> str:
        """Validate, register and start a job; returns its id.

        ``ValidationError`` (blank topic) and ``ConfigurationError`` (missing
        credential) are raised before anything is registered or any
        completion call is made.
        """
        validate_topic(request.topic)
        cfg = self.config
        cfg.require_credentials()

        job_id = self.registry.create_job(request)
        if self._background:
            t = threading.Thread(
                target=self.run_job,
                args=(job_id,),
                name=f"research-{job_id[:8]}",
                daemon=True,
            )
            t.start()
        else:
            self.run_job(job_id)
        return job_id

    def get_status(self, job_id: str) -> ResearchJob:
        return self.registry.get_status(job_id)

    def run_job(self, job_id: str) -> None:
        """Execute the pipeline for *job_id* and write its terminal state.

        Never raises: every failure ends up as ``status=failed``.
        """
        job = self.registry.get_status(job_id)
        cfg = self.config
        publisher = ProgressPublisher(self.registry, job_id)
        self.registry.mark_processing(job_id)
        publisher.publish(ACCEPTED, "Initializing research request...")

        client: Optional[CompletionClient] = None
        calls: list = []
        started = time.monotonic()
        try:
            client = self._client_factory(cfg)
            graph = build_graph(client, publisher, cfg, sleep=self._sleep).compile()
            state: PipelineState = {"job_id": job_id, "request": job.request, "timings": {}}
            with listening(calls.append, job_id=job_id, types=("llm-call-end", "llm-call-error")):
                final_state = graph.invoke(state)
            document = final_state.get("document") or ""
            if not document.strip():
                raise RuntimeError("Pipeline finished without a research document")
        except CompletionError as exc:
            logger.error("Research job %s failed: %s", job_id, exc)
            self.registry.fail(job_id, user_facing_message(exc))
            return
        except Exception as exc:
            logger.exception("Research job %s crashed", job_id)
            self.registry.fail(job_id, user_facing_message(exc))
            return
        finally:
            if client is not None:
                client.close()

        logger.info(
            "Research job %s produced %s chars in %.1fs from %s completion calls (%s failed, timings: %s)",
            job_id, len(document), time.monotonic() - started, len(calls),
            sum(1 for c in calls if c["type"] == "llm-call-error"), final_state.get("timings"),
        )
        self.registry.complete(job_id, document)
