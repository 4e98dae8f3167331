"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from compactly.compaction.service import resolve_config
from compactly.compaction.types import CompactionConfig


class CompactionSettings(BaseModel):
    """User overrides for context compaction. Unset fields keep the preset."""
    enabled: bool = True
    strategy: Literal["per_turn", "rolling_summary", "adaptive"] | None = None
    max_context_tokens: int | None = None
    target_context_tokens: int | None = None
    preserve_last_turns: int | None = None
    max_iterations: int | None = None
    summary_model: str | None = None
    max_summary_tokens: int = 2000


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)


class Config(BaseSettings):
    """Root configuration for compactly."""
    provider: Literal["openai", "anthropic"] = "anthropic"
    model: str | None = None
    compaction: CompactionSettings = Field(default_factory=CompactionSettings)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    def compaction_config(
        self,
        provider: str | None = None,
        model: str | None = None,
    ) -> CompactionConfig:
        """Resolve the effective CompactionConfig for a provider and chat model."""
        overrides = self.compaction.model_dump(exclude={"max_summary_tokens"})
        return resolve_config(provider or self.provider, model or self.model, overrides)

    def get_api_key(self) -> str | None:
        """Get API key in priority order: OpenRouter > Anthropic > OpenAI."""
        return (
            self.providers.openrouter.api_key or
            self.providers.anthropic.api_key or
            self.providers.openai.api_key or
            None
        )

    def get_api_base(self) -> str | None:
        """Get API base URL if using OpenRouter or a custom endpoint."""
        if self.providers.openrouter.api_key:
            return self.providers.openrouter.api_base or "https://openrouter.ai/api/v1"
        return self.providers.anthropic.api_base or self.providers.openai.api_base

    class Config:
        env_prefix = "COMPACTLY_"
        env_nested_delimiter = "__"
