"""Pytest configuration and fixtures."""

import threading
import time
from typing import Callable, Dict, List, Optional

import pytest

from research_pipeline import config as config_module
from research_pipeline.backoff import BackoffPolicy
from research_pipeline.completion import CompletionClient
from research_pipeline.config import AppConfig
from research_pipeline.providers import LLMProvider, clear_cache
from research_pipeline.registry import JobRegistry
from research_pipeline.service import ResearchService

ANGLE_MARKERS = {
    "facts": "YOUR PART: CURRENT FACTS & MARKET DATA",
    "audience": "YOUR PART: AUDIENCE & PAIN-POINT ANALYSIS",
    "competitive": "YOUR PART: COMPETITIVE LANDSCAPE & BEST PRACTICES",
}


def angle_of(prompt: str) -> Optional[str]:
    for key, marker in ANGLE_MARKERS.items():
        if marker in prompt:
            return key
    return None


class FakeProvider(LLMProvider):
    """Scripted completion provider.

    ``responder(prompt, max_tokens)`` returns text or an exception instance;
    exceptions are raised. Without a responder every call echoes the prompt.
    """

    name = "fake"

    def __init__(self, responder: Optional[Callable[[str, Optional[int]], object]] = None, delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.calls: List[Dict] = []
        self._lock = threading.Lock()

    def chat(self, model, messages, temperature=0.2, max_tokens=None, timeout=None):
        prompt = messages[-1]["content"]
        with self._lock:
            self.calls.append({"model": model, "prompt": prompt, "max_tokens": max_tokens})
        if self.delay:
            time.sleep(self.delay)
        outcome = self.responder(prompt, max_tokens) if self.responder else f"Findings for: {prompt[:60]}"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def prompts(self) -> List[str]:
        with self._lock:
            return [c["prompt"] for c in self.calls]


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Known provider credentials and a fresh config for each test."""
    monkeypatch.setenv("LLM_PROVIDER", "anthropic")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-anthropic-key")
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setenv("PERPLEXITY_API_KEY", "test-perplexity-key")
    monkeypatch.delenv("LLM_MODEL", raising=False)
    for role in ("SUBTASK", "DEGRADED", "SYNTHESIS"):
        for suffix in ("MODEL", "TEMPERATURE", "MAX_TOKENS"):
            monkeypatch.delenv(f"{role}_{suffix}", raising=False)
    monkeypatch.setattr(config_module, "_config", None)
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def sleeps() -> List[float]:
    """Recorded backoff waits; pass ``sleeps.append`` as the sleep hook."""
    return []


@pytest.fixture
def test_config() -> AppConfig:
    # Long heartbeat interval: no synthetic ticks during a test run.
    return AppConfig(
        provider="anthropic",
        model="test-model",
        subtask_concurrency=1,
        heartbeat_interval=60.0,
    )


@pytest.fixture
def make_client(sleeps):
    clients: List[CompletionClient] = []

    def _make(provider: LLMProvider, **kwargs) -> CompletionClient:
        kwargs.setdefault("sleep", sleeps.append)
        kwargs.setdefault("timeout", 5.0)
        client = CompletionClient(provider, "test-model", **kwargs)
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()


@pytest.fixture
def make_service(test_config, sleeps):
    """Build a ``ResearchService`` whose jobs run inline on *provider*."""

    def _make(provider: LLMProvider, background: bool = False, config: Optional[AppConfig] = None) -> ResearchService:
        def _factory(cfg: AppConfig) -> CompletionClient:
            return CompletionClient(
                provider,
                "test-model",
                provider_name="fake",
                timeout=5.0,
                policy=BackoffPolicy(attempts=3, base_delay=0.0, max_delay=0.0),
                sleep=sleeps.append,
            )

        return ResearchService(
            registry=JobRegistry(),
            config=config or test_config,
            client_factory=_factory,
            sleep=sleeps.append,
            background=background,
        )

    return _make
