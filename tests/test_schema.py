"""Tests for configuration schema validation."""

import pytest
from pydantic import ValidationError

from compactly.compaction.types import DEFAULT_ANTHROPIC_COMPACTION_CONFIG
from compactly.config.schema import CompactionSettings, Config, ProviderConfig


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.provider == "anthropic"
        assert config.model is None
        assert config.compaction.enabled is True
        assert config.compaction.max_summary_tokens == 2000

    def test_default_compaction_config_is_preset(self):
        assert Config().compaction_config() == DEFAULT_ANTHROPIC_COMPACTION_CONFIG

    def test_compaction_config_for_model(self):
        config = Config()
        resolved = config.compaction_config("openai", "gpt-5.2")
        assert resolved.max_context_tokens == 272_000
        assert resolved.summary_model == "gpt-5-mini"

    def test_settings_override_preset(self):
        config = Config()
        config.compaction.strategy = "rolling_summary"
        config.compaction.enabled = False
        resolved = config.compaction_config()
        assert resolved.strategy == "rolling_summary"
        assert resolved.enabled is False

    def test_get_api_key_priority(self):
        """OpenRouter > Anthropic > OpenAI."""
        config = Config()
        assert config.get_api_key() is None

        config.providers.openai.api_key = "openai-key"
        assert config.get_api_key() == "openai-key"

        config.providers.anthropic.api_key = "anthropic-key"
        assert config.get_api_key() == "anthropic-key"

        config.providers.openrouter.api_key = "openrouter-key"
        assert config.get_api_key() == "openrouter-key"

    def test_get_api_base_openrouter(self):
        config = Config()
        config.providers.openrouter.api_key = "key"
        assert config.get_api_base() == "https://openrouter.ai/api/v1"

    def test_get_api_base_none(self):
        assert Config().get_api_base() is None

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("COMPACTLY_PROVIDER", "openai")
        monkeypatch.setenv("COMPACTLY_COMPACTION__TARGET_CONTEXT_TOKENS", "1234")
        config = Config()
        assert config.provider == "openai"
        assert config.compaction.target_context_tokens == 1234


class TestCompactionSettings:
    def test_rejects_unknown_strategy(self):
        with pytest.raises(ValidationError):
            CompactionSettings(strategy="shrink_everything")

    def test_provider_config_defaults(self):
        provider = ProviderConfig()
        assert provider.api_key == ""
        assert provider.api_base is None
