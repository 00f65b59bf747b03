"""Centralised configuration.

Provider and model selection is driven by environment variables, with
optional per-role overrides for the subtask / degraded / synthesis calls.

Env vars
--------
LLM_PROVIDER           Completion provider (anthropic / openai / perplexity)
LLM_MODEL              Default model   (auto-selected per provider if empty)
LLM_TEMPERATURE        Default sampling temperature

ANTHROPIC_API_KEY      Anthropic
OPENAI_API_KEY         OpenAI
PERPLEXITY_API_KEY     Perplexity

COMPLETION_TIMEOUT     Wall-clock seconds per completion call
SUBTASK_CONCURRENCY    Worker pool size for subtasks (1 = sequential)
HEARTBEAT_INTERVAL     Seconds between synthetic progress ticks

SUBTASK_MODEL          Per-role override example
SYNTHESIS_MAX_TOKENS   Per-role override example
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

DEFAULT_MODELS: Dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
    "perplexity": "sonar-deep-research",
}
AVAILABLE_MODELS: Dict[str, list] = {
    "anthropic": ["claude-sonnet-4-20250514", "claude-haiku-3-5-20241022", "claude-opus-4-20250514"],
    "openai": ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"],
    "perplexity": ["sonar-deep-research", "sonar-pro", "sonar"],
}
API_KEY_ENV: Dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
}
ROLES = ["subtask", "degraded", "synthesis"]

DEFAULT_MAX_TOKENS: Dict[str, int] = {
    "subtask": 2000,
    "degraded": 800,
    "synthesis": 4000,
}


@dataclass
class RoleConfig:
    model: str
    max_tokens: int
    temperature: float = 0.2


@dataclass
class AppConfig:
    provider: str = "anthropic"
    model: str = ""
    temperature: float = 0.2
    completion_timeout: float = 360.0
    subtask_concurrency: int = 3
    heartbeat_interval: float = 2.0
    frontend_url: str = "http://localhost:3000"
    roles: Dict[str, RoleConfig] = field(default_factory=dict)

    def get_role(self, name: str) -> RoleConfig:
        """Return config for *name*, falling back to the global default."""
        if name in self.roles:
            return self.roles[name]
        return RoleConfig(
            model=self.model or DEFAULT_MODELS.get(self.provider, ""),
            max_tokens=DEFAULT_MAX_TOKENS.get(name, 2000),
            temperature=self.temperature,
        )

    @property
    def api_key_env(self) -> str:
        try:
            return API_KEY_ENV[self.provider]
        except KeyError:
            raise ConfigurationError(
                f"Unknown provider: '{self.provider}'. "
                f"Supported: {', '.join(sorted(API_KEY_ENV))}"
            ) from None

    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "")

    def require_credentials(self) -> str:
        """Return the provider credential or raise ``ConfigurationError``."""
        key = self.api_key()
        if not key:
            raise ConfigurationError(
                f"{self.api_key_env} is not configured for provider '{self.provider}'"
            )
        return key


def load_config() -> AppConfig:
    provider = os.getenv("LLM_PROVIDER", "anthropic").strip().lower()
    model = os.getenv("LLM_MODEL", DEFAULT_MODELS.get(provider, ""))
    temperature = float(os.getenv("LLM_TEMPERATURE", "0.2"))

    cfg = AppConfig(
        provider=provider,
        model=model,
        temperature=temperature,
        completion_timeout=float(os.getenv("COMPLETION_TIMEOUT", "360")),
        subtask_concurrency=max(1, int(os.getenv("SUBTASK_CONCURRENCY", "3"))),
        heartbeat_interval=float(os.getenv("HEARTBEAT_INTERVAL", "2")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
    )

    for role in ROLES:
        pfx = role.upper()
        m = os.getenv(f"{pfx}_MODEL")
        t = os.getenv(f"{pfx}_TEMPERATURE")
        mt = os.getenv(f"{pfx}_MAX_TOKENS")
        if m or t or mt:
            cfg.roles[role] = RoleConfig(
                model=m or model,
                max_tokens=int(mt) if mt else DEFAULT_MAX_TOKENS[role],
                temperature=float(t) if t else temperature,
            )
    return cfg


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> AppConfig:
    global _config
    _config = load_config()
    return _config
