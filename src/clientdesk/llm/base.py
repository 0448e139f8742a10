"""Base LLM interface used by the chat assistant."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class LLMResponse(BaseModel):
    """Standardized response from any LLM provider."""

    content: str
    model: str
    usage: dict[str, Any] = {}
    raw: dict[str, Any] | None = None

    @property
    def output_tokens(self) -> int | None:
        value = self.usage.get("completion_tokens") or self.usage.get("output_tokens")
        return int(value) if value is not None else None


class BaseLLM(ABC):
    """Abstract base class for LLM providers.

    Keeps the assistant independent of which hosted model is configured.
    """

    def __init__(self, model: str, **kwargs: Any):
        self.model = model
        self.kwargs = kwargs

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether credentials for the configured provider are present."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 500,
        **kwargs: Any,
    ) -> LLMResponse:
        """Send a chat completion request.

        Args:
            messages: List of {"role": ..., "content": ...} message dicts,
                including any system message first.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the response.
            **kwargs: Provider-specific overrides.

        Returns:
            LLMResponse with the generated content.
        """
        ...
