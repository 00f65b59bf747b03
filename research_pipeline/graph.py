"""LangGraph state graph for one research job.

    decompose -> research -> synthesize -> END

Each node reports its milestone through the job's ``ProgressPublisher``;
the research and synthesize nodes keep a heartbeat running while they wait
on the completion service.
"""

import logging
import time
from typing import Callable, Optional

from langgraph.graph import END, StateGraph
from langsmith import traceable

from .completion import CompletionClient
from .config import AppConfig, get_config
from .decomposer import ANGLES, decompose
from .events import emit
from .executor import SubtaskExecutor
from .models import PipelineState, SubtaskResult
from .progress import (
    DECOMPOSED,
    FINALIZING,
    QUERY_BUILT,
    SUBTASKS_DONE,
    ProgressPublisher,
    subtask_milestone,
)
from .synthesizer import Synthesizer

logger = logging.getLogger(__name__)


def build_graph(
    client: CompletionClient,
    publisher: ProgressPublisher,
    cfg: Optional[AppConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> StateGraph:
    graph = StateGraph(PipelineState)
    cfg = cfg or get_config()

    # ── nodes ────────────────────────────────────────────────

    @traceable(name="decompose_node")
    def decompose_node(state: PipelineState) -> PipelineState:
        request = state["request"]
        started = time.monotonic()
        decomposition = decompose(request)
        publisher.publish(QUERY_BUILT, "Building research query...")
        emit({
            "type": "subtasks-created",
            "job_id": state["job_id"],
            "count": len(decomposition.subtasks),
            "subtasks": [{"index": s.index, "angle": s.angle, "title": s.title} for s in decomposition.subtasks],
        })
        publisher.publish(DECOMPOSED, f"Researching {len(decomposition.subtasks)} angles...")
        timings = dict(state.get("timings") or {})
        timings["decompose"] = round(time.monotonic() - started, 3)
        return {"decomposition": decomposition, "timings": timings}

    @traceable(name="research_node")
    def research_node(state: PipelineState) -> PipelineState:
        decomposition = state["decomposition"]
        subtasks = decomposition.subtasks
        total = len(subtasks)
        started = time.monotonic()
        executor = SubtaskExecutor(
            client,
            state["request"].topic,
            subtask_role=cfg.get_role("subtask"),
            degraded_role=cfg.get_role("degraded"),
            concurrency=cfg.subtask_concurrency,
            sleep=sleep,
            job_id=state["job_id"],
        )
        finished = [0]

        with publisher.heartbeat(
            ceiling=subtask_milestone(1, total) - 1,
            interval=cfg.heartbeat_interval,
        ) as beat:

            def _on_result(result: SubtaskResult) -> None:
                finished[0] += 1
                label = "reduced-scope" if result.degraded else "complete"
                publisher.publish(
                    subtask_milestone(finished[0], total),
                    f"Research angle {finished[0]}/{total} {label}: {subtask_title(result)}",
                )
                if finished[0] < total:
                    beat.raise_ceiling(subtask_milestone(finished[0] + 1, total) - 1)

            results = executor.run_all(subtasks, on_result=_on_result)

        degraded = sum(1 for r in results if r.degraded)
        if degraded:
            logger.warning("Job %s: %s/%s subtasks degraded", state["job_id"], degraded, total)
        publisher.publish(SUBTASKS_DONE, "All research angles gathered")
        timings = dict(state.get("timings") or {})
        timings["research"] = round(time.monotonic() - started, 3)
        return {"subtask_results": results, "timings": timings}

    @traceable(name="synthesize_node")
    def synthesize_node(state: PipelineState) -> PipelineState:
        request = state["request"]
        started = time.monotonic()
        synthesizer = Synthesizer(
            client,
            role=cfg.get_role("synthesis"),
            sleep=sleep,
            job_id=state["job_id"],
        )
        with publisher.heartbeat(ceiling=FINALIZING - 1, interval=cfg.heartbeat_interval):
            document = synthesizer.synthesize(
                request.topic,
                request.context,
                state["subtask_results"],
                template=state["decomposition"].recombination_template,
            )
        publisher.publish(FINALIZING, "Processing final results...")
        timings = dict(state.get("timings") or {})
        timings["synthesize"] = round(time.monotonic() - started, 3)
        return {"document": document, "timings": timings}

    # ── wiring ───────────────────────────────────────────────

    graph.add_node("decompose", decompose_node)
    graph.add_node("research", research_node)
    graph.add_node("synthesize", synthesize_node)

    graph.set_entry_point("decompose")
    graph.add_edge("decompose", "research")
    graph.add_edge("research", "synthesize")
    graph.add_edge("synthesize", END)

    return graph


_ANGLE_TITLES = {angle.key: angle.title for angle in ANGLES}


def subtask_title(result: SubtaskResult) -> str:
    return _ANGLE_TITLES.get(result.angle) or f"Section {result.index + 1}"
