"""Completion provider registry.

Supported providers:
  - anthropic   (Anthropic Claude models)
  - openai      (OpenAI GPT models)
  - perplexity  (Perplexity Sonar via OpenAI-compatible endpoint)
"""

from typing import Dict

from ..errors import ConfigurationError
from .base import LLMProvider

_cache: Dict[str, LLMProvider] = {}


def get_provider(name: str, api_key: str) -> LLMProvider:
    """Get or create a cached provider instance by name."""
    if not api_key:
        raise ConfigurationError(f"No API key supplied for provider '{name}'")
    cache_key = f"{name}:{hash(api_key)}"

    if cache_key not in _cache:
        if name == "anthropic":
            from .anthropic_provider import AnthropicProvider
            _cache[cache_key] = AnthropicProvider(api_key=api_key)
        elif name == "openai":
            from .openai_provider import OpenAIProvider
            _cache[cache_key] = OpenAIProvider(api_key=api_key)
        elif name == "perplexity":
            from .openai_provider import PerplexityProvider
            _cache[cache_key] = PerplexityProvider(api_key=api_key)
        else:
            raise ConfigurationError(
                f"Unknown provider: '{name}'. "
                f"Supported: {', '.join(list_providers())}"
            )
    return _cache[cache_key]


def clear_cache():
    """Clear provider cache (useful after config changes)."""
    _cache.clear()


def list_providers() -> list:
    return ["anthropic", "openai", "perplexity"]


__all__ = ["LLMProvider", "get_provider", "list_providers", "clear_cache"]
