"""Abstract base class for completion providers."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..errors import CompletionError, TransportError, UnretryableServiceError


class LLMProvider(ABC):
    """Base class for all completion providers.

    Every provider accepts OpenAI-style messages:
        [{"role": "system"|"user"|"assistant", "content": "..."}]
    and returns a non-empty plain-text string.

    Providers translate their SDK's exceptions into the pipeline taxonomy:
    connection problems and vendor 5xx become ``TransportError``, other
    vendor error responses become ``UnretryableServiceError``, and a reply
    without text becomes ``MalformedResponse``.
    """

    name: str = "base"

    @abstractmethod
    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Send chat messages and return the text response."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


def status_error(provider: str, status_code: Optional[int], message: str) -> CompletionError:
    """Map a vendor HTTP error onto the retry taxonomy."""
    text = f"{provider} API error: {status_code} - {message}"
    if status_code is not None and status_code >= 500:
        return TransportError(text)
    return UnretryableServiceError(text, status_code=status_code)
