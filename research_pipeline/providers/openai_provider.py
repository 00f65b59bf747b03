"""OpenAI-compatible chat-completions provider.

Serves both OpenAI itself and Perplexity, which exposes the same
chat-completions format at its own base URL:
  base_url = https://api.perplexity.ai

The API key arrives through ``get_provider``; ``AppConfig.require_credentials``
resolves it from OPENAI_API_KEY or PERPLEXITY_API_KEY. The constructor never
reads the environment.
"""

from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from ..errors import CompletionTimeout, MalformedResponse, TransportError
from .base import LLMProvider, status_error

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        self.client = OpenAI(**kwargs)

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as exc:
            raise CompletionTimeout(f"{self.name} request timed out: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise TransportError(f"{self.name} connection error: {exc}") from exc
        except openai.APIStatusError as exc:
            raise status_error(self.name, exc.status_code, str(exc)) from exc

        return self._extract_text(response)

    def _extract_text(self, response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedResponse(f"{self.name} response has no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse(f"No research content found in {self.name} response")
        return content


class PerplexityProvider(OpenAIProvider):
    name = "perplexity"

    def __init__(self, api_key: str):
        super().__init__(api_key=api_key, base_url=PERPLEXITY_BASE_URL)
