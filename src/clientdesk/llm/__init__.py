"""Pluggable LLM abstraction layer."""

from clientdesk.llm.base import BaseLLM, LLMResponse
from clientdesk.llm.router import LLMRouter, get_llm

__all__ = ["BaseLLM", "LLMResponse", "LLMRouter", "get_llm"]
