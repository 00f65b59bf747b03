"""Recombine subtask outputs into one research document."""

import logging
import time
from typing import Callable, List, Optional

from langsmith import traceable

from .backoff import STAGE_BACKOFF, BackoffPolicy, retry_call
from .completion import CompletionClient
from .config import RoleConfig
from .decomposer import ANGLES, build_recombination_template
from .errors import TransportError
from .events import emit
from .models import SubtaskResult
from .prompts import FALLBACK_SUMMARY, SYNTHESIS_PROMPT

logger = logging.getLogger(__name__)

MAX_SECTION_CHARS = 30000

_TITLES = {angle.key: angle.title for angle in ANGLES}


def _section_title(result: SubtaskResult) -> str:
    return _TITLES.get(result.angle) or f"Section {result.index + 1}"


def format_sections(results: List[SubtaskResult]) -> str:
    parts = []
    for r in sorted(results, key=lambda r: r.index):
        text = r.text.strip()
        if len(text) > MAX_SECTION_CHARS:
            text = text[:MAX_SECTION_CHARS].rstrip() + "\n[truncated]"
        label = f"### Researcher {r.index + 1}: {_section_title(r)}"
        if r.degraded:
            label += " (reduced scope)"
        parts.append(f"{label}\n\n{text}")
    return "\n\n".join(parts)


def concatenate(topic: str, results: List[SubtaskResult]) -> str:
    """Deterministic fallback document: a summary stub plus every section
    under its own heading."""
    ordered = sorted(results, key=lambda r: r.index)
    lines = [
        f"# Research Report: {topic}",
        "",
        "## Executive Summary",
        "",
        FALLBACK_SUMMARY.format(count=len(ordered), topic=topic),
    ]
    for r in ordered:
        lines += ["", f"## {_section_title(r)}", "", r.text.strip() or "_No content._"]
    return "\n".join(lines) + "\n"


class Synthesizer:
    def __init__(
        self,
        client: CompletionClient,
        *,
        role: Optional[RoleConfig] = None,
        policy: BackoffPolicy = STAGE_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
        job_id: Optional[str] = None,
    ):
        self.client = client
        self.role = role or RoleConfig(model=client.model, max_tokens=4000)
        self.policy = policy
        self._sleep = sleep
        self.job_id = job_id

    @traceable(name="synthesize")
    def synthesize(
        self,
        topic: str,
        original_context: str,
        results: List[SubtaskResult],
        template: Optional[str] = None,
    ) -> str:
        template = template or build_recombination_template(topic, original_context)
        prompt = SYNTHESIS_PROMPT.format(template=template, sections=format_sections(results))

        def _call() -> str:
            return self.client.complete(
                prompt,
                model=self.role.model,
                max_tokens=self.role.max_tokens,
                temperature=self.role.temperature,
                role="synthesis",
                job_id=self.job_id,
            )

        def _on_retry(n: int, exc: BaseException, wait: float) -> None:
            logger.warning(
                "Synthesis attempt %s/%s failed: %s; retrying in %.0fs",
                n, self.policy.attempts, exc, wait,
            )

        try:
            document = retry_call(
                _call,
                self.policy,
                retry_on=(TransportError,),
                sleep=self._sleep,
                on_retry=_on_retry,
            )
        except TransportError as exc:
            logger.error("Synthesis exhausted retries (%s); concatenating sections", exc)
            emit({"type": "synthesis-fallback", "job_id": self.job_id, "error": str(exc)[:200]})
            return concatenate(topic, results)

        emit({"type": "report-synthesized", "job_id": self.job_id, "report_length": len(document)})
        return document
