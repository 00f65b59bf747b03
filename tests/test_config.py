import pytest

from research_pipeline.config import AppConfig, get_config, reload_config
from research_pipeline.errors import ConfigurationError
from research_pipeline.providers import get_provider, list_providers
from research_pipeline.providers.anthropic_provider import AnthropicProvider
from research_pipeline.providers.openai_provider import PerplexityProvider


def test_defaults():
    cfg = reload_config()

    assert cfg.provider == "anthropic"
    assert cfg.model == "claude-sonnet-4-20250514"
    assert cfg.completion_timeout == 360.0
    assert cfg.subtask_concurrency == 3
    assert cfg.get_role("subtask").max_tokens == 2000
    assert cfg.get_role("degraded").max_tokens == 800
    assert cfg.get_role("synthesis").max_tokens == 4000
    assert get_config() is cfg


def test_role_overrides_from_env(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "perplexity")
    monkeypatch.setenv("SYNTHESIS_MODEL", "sonar-pro")
    monkeypatch.setenv("DEGRADED_MAX_TOKENS", "500")
    monkeypatch.setenv("SUBTASK_CONCURRENCY", "0")
    cfg = reload_config()

    assert cfg.model == "sonar-deep-research"
    assert cfg.get_role("synthesis").model == "sonar-pro"
    assert cfg.get_role("synthesis").max_tokens == 4000
    assert cfg.get_role("degraded").max_tokens == 500
    assert cfg.get_role("subtask").model == "sonar-deep-research"
    assert cfg.subtask_concurrency == 1


def test_require_credentials(monkeypatch):
    cfg = AppConfig(provider="openai")
    assert cfg.require_credentials() == "test-openai-key"

    monkeypatch.delenv("OPENAI_API_KEY")
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        cfg.require_credentials()


def test_unknown_provider_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="Unknown provider"):
        AppConfig(provider="mystery").require_credentials()
    with pytest.raises(ConfigurationError):
        get_provider("mystery", "key")


def test_provider_registry_caches_instances():
    first = get_provider("anthropic", "key-a")
    assert isinstance(first, AnthropicProvider)
    assert get_provider("anthropic", "key-a") is first
    assert get_provider("anthropic", "key-b") is not first
    assert isinstance(get_provider("perplexity", "key-a"), PerplexityProvider)
    assert list_providers() == ["anthropic", "openai", "perplexity"]


def test_provider_requires_api_key():
    with pytest.raises(ConfigurationError):
        get_provider("openai", "")
