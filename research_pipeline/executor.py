"""Run decomposed subtasks through the completion client.

Per subtask:
  attempt 1..3, waiting 4s then 8s after transport failures
  -> one degraded attempt (short prompt, small token budget)
  -> static placeholder naming the subtask

Transport exhaustion never escapes ``run_subtask``. Vendor errors that
retrying cannot fix (auth, quota, malformed payload) do.
"""

import concurrent.futures
import logging
import time
from typing import Callable, List, Optional

from langsmith import traceable

from .backoff import STAGE_BACKOFF, BackoffPolicy, retry_call
from .completion import CompletionClient
from .config import RoleConfig
from .decomposer import placeholder_text
from .errors import TransportError
from .events import emit
from .models import SubtaskPrompt, SubtaskResult

logger = logging.getLogger(__name__)

ResultCallback = Callable[[SubtaskResult], None]


class SubtaskExecutor:
    def __init__(
        self,
        client: CompletionClient,
        topic: str,
        *,
        subtask_role: Optional[RoleConfig] = None,
        degraded_role: Optional[RoleConfig] = None,
        policy: BackoffPolicy = STAGE_BACKOFF,
        concurrency: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        job_id: Optional[str] = None,
    ):
        self.client = client
        self.topic = topic
        self.subtask_role = subtask_role or RoleConfig(model=client.model, max_tokens=2000)
        self.degraded_role = degraded_role or RoleConfig(model=client.model, max_tokens=800)
        self.policy = policy
        self.concurrency = max(1, concurrency)
        self._sleep = sleep
        self.job_id = job_id

    @traceable(name="run_subtask")
    def run_subtask(self, subtask: SubtaskPrompt) -> SubtaskResult:
        calls = [0]

        def _primary() -> str:
            calls[0] += 1
            return self.client.complete(
                subtask.prompt,
                model=self.subtask_role.model,
                max_tokens=self.subtask_role.max_tokens,
                temperature=self.subtask_role.temperature,
                role=f"subtask:{subtask.angle}",
                job_id=self.job_id,
            )

        def _on_retry(n: int, exc: BaseException, wait: float) -> None:
            logger.warning(
                "Subtask %s (%s) attempt %s/%s failed: %s; retrying in %.0fs",
                subtask.index, subtask.angle, n, self.policy.attempts, exc, wait,
            )
            emit({
                "type": "subtask-retry",
                "job_id": self.job_id,
                "index": subtask.index,
                "angle": subtask.angle,
                "attempt": n,
                "error": str(exc)[:200],
            })

        try:
            text = retry_call(
                _primary,
                self.policy,
                retry_on=(TransportError,),
                sleep=self._sleep,
                on_retry=_on_retry,
            )
            return self._finish(SubtaskResult(
                index=subtask.index, angle=subtask.angle, text=text, attempts=calls[0],
            ))
        except TransportError as exc:
            logger.warning(
                "Subtask %s (%s) exhausted %s attempts (%s); trying degraded prompt",
                subtask.index, subtask.angle, self.policy.attempts, exc,
            )

        calls[0] += 1
        try:
            text = self.client.complete(
                subtask.degraded_prompt,
                model=self.degraded_role.model,
                max_tokens=self.degraded_role.max_tokens,
                temperature=self.degraded_role.temperature,
                role=f"degraded:{subtask.angle}",
                job_id=self.job_id,
            )
        except TransportError as exc:
            logger.error(
                "Degraded attempt for subtask %s (%s) failed: %s; using placeholder",
                subtask.index, subtask.angle, exc,
            )
            text = placeholder_text(subtask, self.topic)
        return self._finish(SubtaskResult(
            index=subtask.index, angle=subtask.angle, text=text, degraded=True, attempts=calls[0],
        ))

    def _finish(self, result: SubtaskResult) -> SubtaskResult:
        emit({
            "type": "subtask-complete",
            "job_id": self.job_id,
            "index": result.index,
            "angle": result.angle,
            "degraded": result.degraded,
            "attempts": result.attempts,
            "output_length": len(result.text),
        })
        return result

    def run_all(
        self,
        subtasks: List[SubtaskPrompt],
        on_result: Optional[ResultCallback] = None,
    ) -> List[SubtaskResult]:
        """Run every subtask; results come back ordered by index.

        With ``concurrency == 1`` subtasks run one after another in index
        order. Otherwise they share a fixed-size thread pool and *on_result*
        fires in completion order. The first error escapes immediately;
        queued subtasks are cancelled and running ones finish unobserved.
        """
        results: List[SubtaskResult] = []
        if self.concurrency == 1:
            for st in subtasks:
                result = self.run_subtask(st)
                results.append(result)
                if on_result is not None:
                    on_result(result)
            return results

        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.concurrency, len(subtasks)) or 1,
            thread_name_prefix="subtask",
        )
        try:
            futures = [pool.submit(self.run_subtask, st) for st in subtasks]
            for fut in concurrent.futures.as_completed(futures):
                result = fut.result()
                results.append(result)
                if on_result is not None:
                    on_result(result)
        except BaseException:
            # fail fast: queued subtasks are dropped and running ones are not awaited
            pool.shutdown(wait=False, cancel_futures=True)
            raise
        pool.shutdown(wait=True)
        return sorted(results, key=lambda r: r.index)
