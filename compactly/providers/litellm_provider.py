"""LiteLLM provider used for summarization calls."""

import os
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from compactly.compaction.types import MODELS
from compactly.providers.base import LLMProvider, LLMResponse


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM.

    Handles OpenAI and Anthropic models directly and OpenRouter when the key
    or base URL points there.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "claude-sonnet-4.5",
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.request_timeout_seconds = float(os.getenv("COMPACTLY_LLM_TIMEOUT_SECONDS", "60"))

        # Detect OpenRouter by api_key prefix or explicit api_base
        self.is_openrouter = bool(
            (api_key and api_key.startswith("sk-or-")) or
            (api_base and "openrouter" in api_base)
        )

        # Keys are passed per request and never written to os.environ
        litellm.suppress_debug_info = True

    def resolve_model(self, model: str | None) -> str:
        """Map a display model name to the identifier LiteLLM expects."""
        model = model or self.default_model
        info = MODELS.get(model)
        if info is not None:
            model = info.api_name or info.name
            if info.provider == "anthropic" and not model.startswith("anthropic/"):
                model = f"anthropic/{model}"
            elif info.provider == "openai" and not model.startswith("openai/"):
                model = f"openai/{model}"

        if self.is_openrouter and not model.startswith("openrouter/"):
            model = f"openrouter/{model}"
        return model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model identifier or a name from the model registry.
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse; ``finish_reason`` is "error" if the call failed.
        """
        kwargs: dict[str, Any] = {
            "model": self.resolve_model(model),
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": self.request_timeout_seconds,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key

        try:
            response = await acompletion(**kwargs)
            return self._parse_response(response)
        except Exception as e:
            # Redact potential API keys from error messages
            error_msg = str(e)
            if self.api_key and len(self.api_key) > 8:
                error_msg = error_msg.replace(self.api_key, "***")
            logger.error(f"LLM call error: {error_msg}")
            return LLMResponse(
                content=f"Error calling LLM: {error_msg}",
                finish_reason="error",
            )

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model
