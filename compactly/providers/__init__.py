"""LLM provider abstraction module."""

from compactly.providers.base import LLMProvider, LLMResponse
from compactly.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
