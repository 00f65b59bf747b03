"""Anthropic Claude provider.

The Anthropic Messages API differs from OpenAI:
  - System message is a top-level parameter, not in the messages array.
  - Only "user" and "assistant" roles allowed in messages.

This provider transparently adapts OpenAI-style messages.

The API key arrives through ``get_provider``; ``AppConfig.require_credentials``
resolves it from ANTHROPIC_API_KEY. The constructor never reads the
environment.
"""

from typing import Any, Dict, List, Optional

import anthropic

from ..errors import CompletionTimeout, MalformedResponse, TransportError
from .base import LLMProvider, status_error


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def __init__(self, api_key: str):
        # Retries are owned by CompletionClient.
        self.client = anthropic.Anthropic(api_key=api_key, max_retries=0)

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        system_parts: List[str] = []
        conversation: List[Dict[str, str]] = []

        for msg in messages:
            if msg["role"] == "system":
                system_parts.append(msg["content"])
            else:
                conversation.append({"role": msg["role"], "content": msg["content"]})

        if not conversation:
            conversation = [{"role": "user", "content": "Please respond."}]

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": conversation,
            "temperature": temperature,
            "max_tokens": max_tokens or 4000,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as exc:
            raise CompletionTimeout(f"anthropic request timed out: {exc}") from exc
        except anthropic.APIConnectionError as exc:
            raise TransportError(f"anthropic connection error: {exc}") from exc
        except anthropic.APIStatusError as exc:
            raise status_error(self.name, exc.status_code, str(exc)) from exc

        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        blocks = getattr(response, "content", None)
        if not isinstance(blocks, list):
            raise MalformedResponse("anthropic response has no content blocks")
        text = ""
        for block in blocks:
            if getattr(block, "type", None) == "text":
                text += block.text or ""
        if not text.strip():
            raise MalformedResponse("No research content found in anthropic response")
        return text
