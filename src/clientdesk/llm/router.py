"""LLM Router - sends assistant completions to the configured provider via litellm."""

from __future__ import annotations

import logging
import os
from typing import Any

from clientdesk.config import settings
from clientdesk.llm.base import BaseLLM, LLMResponse

logger = logging.getLogger(__name__)

# provider -> (litellm model prefix, env var litellm reads, settings attribute)
PROVIDERS: dict[str, tuple[str, str, str]] = {
    "openai": ("", "OPENAI_API_KEY", "openai_api_key"),
    "anthropic": ("anthropic/", "ANTHROPIC_API_KEY", "anthropic_api_key"),
}

_llm_instance: LLMRouter | None = None


class LLMRouter(BaseLLM):
    """Routes chat completions through litellm.

    Only hosted providers are supported; when no key is configured the
    router reports itself unavailable and callers answer from canned text.
    """

    def __init__(self, model: str | None = None, **kwargs: Any):
        super().__init__(model=model or settings.llm_model, **kwargs)
        self.provider = settings.llm_provider.lower()
        if self.provider in PROVIDERS:
            _, env_var, attr = PROVIDERS[self.provider]
            key = getattr(settings, attr, "")
            if key:
                os.environ.setdefault(env_var, key)
        else:
            logger.warning("Unknown LLM provider %r, passing model name through", self.provider)

    @property
    def available(self) -> bool:
        return bool(settings.llm_api_key)

    def _resolve_model_name(self, model: str | None = None) -> str:
        name = model or self.model
        prefix = PROVIDERS.get(settings.llm_provider.lower(), ("",))[0]
        if prefix and not name.startswith(prefix):
            return prefix + name
        return name

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 500,
        **kwargs: Any,
    ) -> LLMResponse:
        import litellm

        litellm.drop_params = True
        model_name = self._resolve_model_name()
        kwargs.setdefault("timeout", settings.llm_timeout)
        kwargs.setdefault("num_retries", settings.llm_max_retries)

        logger.info("Chat completion: model=%s turns=%d", model_name, len(messages))
        try:
            response = await litellm.acompletion(
                model=model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception:
            logger.exception("Chat completion failed for model=%s", model_name)
            raise

        result = LLMResponse(
            content=response.choices[0].message.content or "",
            model=model_name,
            usage=dict(response.usage) if response.usage else {},
            raw=response.model_dump() if hasattr(response, "model_dump") else None,
        )
        logger.debug("Chat completion used %s output tokens", result.output_tokens)
        return result


def get_llm(model: str | None = None) -> LLMRouter:
    """Return the shared router, rebuilding it when a model is requested."""
    global _llm_instance
    if _llm_instance is None or model is not None:
        _llm_instance = LLMRouter(model=model)
    return _llm_instance
