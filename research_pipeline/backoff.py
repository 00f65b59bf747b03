"""Parameterised exponential backoff shared by every retrying layer.

The completion client, subtask executor, synthesizer and poller each build
a ``BackoffPolicy`` with their own constants instead of hand-rolling a loop.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    growth: float = 2.0
    max_delay: float = 8.0
    jitter: float = 0.0

    def delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Seconds to wait before *attempt* (1-based): base * growth^(attempt-1), capped."""
        attempt = max(1, attempt)
        wait = min(self.max_delay, self.base_delay * (self.growth ** (attempt - 1)))
        if self.jitter > 0:
            wait += (rng or random).uniform(0, self.jitter)
        return wait


# Completion client: 2s before attempt 2, 4s before attempt 3 (capped at 8s).
CLIENT_BACKOFF = BackoffPolicy(attempts=3, base_delay=1.0, growth=2.0, max_delay=8.0)
# Subtasks and synthesis: 2^n seconds before attempt n = 2, 3.
STAGE_BACKOFF = BackoffPolicy(attempts=3, base_delay=2.0, growth=2.0, max_delay=16.0)
# Poller: 2s before the first poll, growing by 1.2x up to 15s, plus up to 500ms of jitter.
POLL_BACKOFF = BackoffPolicy(attempts=60, base_delay=2.0, growth=1.2, max_delay=15.0, jitter=0.5)


def retry_call(
    fn: Callable[[], T],
    policy: BackoffPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Call *fn* up to ``policy.attempts`` times, retrying only on *retry_on*.

    Before attempt k (k >= 2) it waits ``policy.delay(k)``. Exceptions
    outside *retry_on* propagate immediately. After the last
    attempt the final retryable exception is re-raised.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except retry_on as exc:
            if attempt >= policy.attempts:
                raise
            wait = policy.delay(attempt + 1)
            if on_retry is not None:
                on_retry(attempt, exc, wait)
            else:
                logger.warning(
                    "Attempt %s/%s failed (%s); retrying in %.1fs",
                    attempt, policy.attempts, exc, wait,
                )
            sleep(wait)
            attempt += 1
