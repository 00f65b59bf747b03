"""Completion client: one prompt in, text out.

Owns the per-call wall-clock timeout and the transport-level retry policy.
Everything above this layer (subtasks, synthesis) sees either text or a
typed ``CompletionError``.
"""

import concurrent.futures
import logging
import time
from typing import Callable, Dict, List, Optional

from .backoff import CLIENT_BACKOFF, BackoffPolicy, retry_call
from .config import AppConfig, get_config
from .errors import CompletionTimeout, TransportError
from .events import emit
from .providers import LLMProvider, get_provider

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a research assistant that provides comprehensive, accurate, and detailed "
    "responses based on the latest available information. When provided with specific "
    "user data like scraped websites, transcripts, or image analysis, you MUST prioritize "
    "and heavily reference that information in your response."
)


class CompletionClient:
    """Send prompts to the configured completion provider."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        *,
        provider_name: Optional[str] = None,
        timeout: float = 360.0,
        temperature: float = 0.2,
        policy: BackoffPolicy = CLIENT_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 8,
    ):
        self.provider = provider
        self.provider_name = provider_name or provider.name
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.policy = policy
        self._sleep = sleep
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="completion"
        )

    @classmethod
    def from_config(cls, cfg: Optional[AppConfig] = None, **kwargs) -> "CompletionClient":
        """Build a client for the configured provider.

        Raises ``ConfigurationError`` when the credential is missing, before
        any network activity.
        """
        cfg = cfg or get_config()
        api_key = cfg.require_credentials()
        provider = get_provider(cfg.provider, api_key)
        return cls(
            provider,
            cfg.get_role("subtask").model,
            provider_name=cfg.provider,
            timeout=cfg.completion_timeout,
            temperature=cfg.temperature,
            **kwargs,
        )

    def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        *,
        system: Optional[str] = None,
        role: str = "research",
        job_id: Optional[str] = None,
    ) -> str:
        """Return the completion text for *prompt*.

        Retries ``TransportError`` (including ``CompletionTimeout``) up to
        ``policy.attempts`` times. ``UnretryableServiceError`` and
        ``MalformedResponse`` propagate on the first occurrence.
        """
        messages = [
            {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        model = model or self.model
        temp = temperature if temperature is not None else self.temperature
        limit = timeout if timeout is not None else self.timeout
        attempt = [0]

        def _attempt() -> str:
            attempt[0] += 1
            return self._call_once(messages, model, max_tokens, temp, limit, role, job_id, attempt[0])

        def _on_retry(n: int, exc: BaseException, wait: float) -> None:
            logger.warning(
                "Network error encountered for [%s], retrying (%s/%s) in %.1fs: %s",
                role, n, self.policy.attempts, wait, exc,
            )

        return retry_call(
            _attempt,
            self.policy,
            retry_on=(TransportError,),
            sleep=self._sleep,
            on_retry=_on_retry,
        )

    def _call_once(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int],
        temperature: float,
        timeout: float,
        role: str,
        job_id: Optional[str],
        attempt: int,
    ) -> str:
        emit({
            "type": "llm-call-start",
            "job_id": job_id,
            "model": model,
            "provider": self.provider_name,
            "role": role,
            "attempt": attempt,
        })
        started = time.monotonic()
        future = self._pool.submit(
            self.provider.chat,
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        try:
            text = future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            # The worker keeps running until the SDK's own timeout fires; we
            # stop waiting for it here.
            future.cancel()
            exc = CompletionTimeout(f"Completion call exceeded {timeout:.0f}s")
            self._emit_error(job_id, model, role, attempt, exc)
            raise exc from None
        except Exception as exc:
            self._emit_error(job_id, model, role, attempt, exc)
            raise

        elapsed = time.monotonic() - started
        logger.info(
            "Completion [%s] via %s/%s returned %s chars in %.1fs (attempt %s)",
            role, self.provider_name, model, len(text), elapsed, attempt,
        )
        emit({
            "type": "llm-call-end",
            "job_id": job_id,
            "model": model,
            "provider": self.provider_name,
            "role": role,
            "output_length": len(text),
        })
        return text

    def _emit_error(self, job_id, model, role, attempt, exc: BaseException) -> None:
        emit({
            "type": "llm-call-error",
            "job_id": job_id,
            "model": model,
            "provider": self.provider_name,
            "role": role,
            "error": str(exc)[:200],
            "error_type": exc.__class__.__name__,
            "attempt": attempt,
        })

    def close(self) -> None:
        self._pool.shutdown(wait=False)
