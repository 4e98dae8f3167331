"""Tests for CompactionService."""

from typing import Any

import pytest

import compactly.compaction.service as service_module
from compactly.compaction.adapters import AnthropicAdapter, OpenAIAdapter
from compactly.compaction.service import CompactionService, resolve_config
from compactly.compaction.types import (
    DEFAULT_ANTHROPIC_COMPACTION_CONFIG,
    DEFAULT_OPENAI_COMPACTION_CONFIG,
    SUMMARY_MARKER_PREFIX,
    CompactionConfig,
)
from compactly.providers.base import LLMProvider, LLMResponse
from history_builders import anthropic_history, openai_history


class FakeProvider(LLMProvider):
    def __init__(self, content: str = "LLM summary", finish_reason: str = "stop"):
        super().__init__(api_key=None)
        self.content = content
        self.finish_reason = finish_reason
        self.calls = 0

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.2):
        self.calls += 1
        return LLMResponse(content=self.content, finish_reason=self.finish_reason)

    def get_default_model(self) -> str:
        return "fake"


def _small_config(**overrides) -> CompactionConfig:
    values = dict(
        max_context_tokens=10_000,
        target_context_tokens=500,
        preserve_last_turns=2,
        strategy="per_turn",
    )
    values.update(overrides)
    return CompactionConfig(**values)


class TestResolveConfig:
    def test_provider_presets(self):
        assert resolve_config("openai") == DEFAULT_OPENAI_COMPACTION_CONFIG
        assert resolve_config("anthropic") == DEFAULT_ANTHROPIC_COMPACTION_CONFIG

    def test_model_sizing(self):
        config = resolve_config("openai", "gpt-5.1")
        assert config.max_context_tokens == 272_000
        assert config.target_context_tokens == 180_000

    def test_unknown_model_keeps_preset(self):
        assert resolve_config("anthropic", "some-new-model") == DEFAULT_ANTHROPIC_COMPACTION_CONFIG

    def test_overrides_win_and_none_is_ignored(self):
        config = resolve_config(
            "anthropic",
            "claude-opus-4.5",
            {"target_context_tokens": 5000, "strategy": None, "preserve_last_turns": 3},
        )
        assert config.target_context_tokens == 5000
        assert config.preserve_last_turns == 3
        assert config.strategy == "adaptive"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            resolve_config("gemini")

    def test_presets_are_immutable(self):
        with pytest.raises(Exception):
            DEFAULT_OPENAI_COMPACTION_CONFIG.target_context_tokens = 1  # type: ignore[misc]


class TestServiceBasics:
    def test_default_config_from_adapter(self):
        service = CompactionService(OpenAIAdapter())
        assert service.config == DEFAULT_OPENAI_COMPACTION_CONFIG

    def test_should_compact(self):
        service = CompactionService(OpenAIAdapter(), config=_small_config())
        assert service.should_compact(501) is True
        assert service.should_compact(500) is False

    def test_needs_compaction(self):
        history = openai_history(5)
        assert CompactionService(OpenAIAdapter(), config=_small_config()).needs_compaction(history)
        assert not CompactionService(
            OpenAIAdapter(), config=_small_config(enabled=False)
        ).needs_compaction(history)

    def test_log_context_metrics_emits_event(self):
        events: list[dict[str, Any]] = []
        service = CompactionService(
            AnthropicAdapter(), config=_small_config(), on_event=events.append
        )
        history = anthropic_history(2)

        service.log_context_metrics(history, iteration=3, phase="before")

        assert len(events) == 1
        event = events[0]
        assert event["type"] == "context_metrics"
        assert event["provider"] == "anthropic"
        assert event["iteration"] == 3
        assert event["metrics"]["total_tokens"] == service.get_metrics(history).total_tokens
        assert event["metrics"]["history_items"] == len(history)
        assert set(event["metrics"]["breakdown"]) == {
            "user", "assistant", "tool_calls", "tool_results", "reasoning",
        }

    def test_event_sink_errors_are_contained(self):
        def broken(event):
            raise RuntimeError("sink down")

        service = CompactionService(OpenAIAdapter(), config=_small_config(), on_event=broken)
        service.log_context_metrics(openai_history(1))


class TestMaybeCompact:
    @pytest.mark.asyncio
    async def test_auto_compaction_off(self):
        history = openai_history(5)
        service = CompactionService(OpenAIAdapter(), config=_small_config())
        assert await service.maybe_compact(history, auto_compaction=False) is history

    @pytest.mark.asyncio
    async def test_not_needed(self):
        history = openai_history(2)
        service = CompactionService(
            OpenAIAdapter(), config=_small_config(target_context_tokens=100_000)
        )
        assert await service.maybe_compact(history) is history
        assert service.compaction_count == 0

    @pytest.mark.asyncio
    async def test_uses_llm_provider(self):
        events: list[dict[str, Any]] = []
        provider = FakeProvider("LLM summary")
        service = CompactionService(
            OpenAIAdapter(), provider=provider, config=_small_config(), on_event=events.append
        )

        compacted = await service.maybe_compact(openai_history(5))

        assert provider.calls == 3
        summary = compacted[1]["content"][0]["text"]
        assert summary == SUMMARY_MARKER_PREFIX + "LLM summary"
        assert service.compaction_count == 1
        assert events[-1]["type"] == "compaction"
        assert events[-1]["fallback"] is False
        assert events[-1]["turns_summarized"] == 3
        assert events[-1]["new_tokens"] < events[-1]["original_tokens"]

    @pytest.mark.asyncio
    async def test_without_provider_uses_fallback_summarizer(self):
        events: list[dict[str, Any]] = []
        service = CompactionService(
            OpenAIAdapter(), config=_small_config(), on_event=events.append
        )

        compacted = await service.maybe_compact(openai_history(5))

        summary = compacted[1]["content"][0]["text"]
        assert "[Summarized 1 conversation turns]" in summary
        assert "- question 1" in summary
        assert events[-1]["fallback"] is True

    @pytest.mark.asyncio
    async def test_failing_llm_keeps_history(self):
        history = openai_history(5)
        provider = FakeProvider("Error calling LLM: down", finish_reason="error")
        service = CompactionService(OpenAIAdapter(), provider=provider, config=_small_config())

        assert await service.maybe_compact(history) is history

    @pytest.mark.asyncio
    async def test_retries_with_fallback_when_run_raises(self, monkeypatch):
        real_compact_history = service_module.compact_history
        attempts: list[Any] = []

        async def flaky(history, config, summarizer, adapter):
            attempts.append(summarizer)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return await real_compact_history(history, config, summarizer, adapter)

        monkeypatch.setattr(service_module, "compact_history", flaky)
        events: list[dict[str, Any]] = []
        service = CompactionService(
            OpenAIAdapter(), provider=FakeProvider(), config=_small_config(), on_event=events.append
        )

        compacted = await service.maybe_compact(openai_history(5))

        assert len(attempts) == 2
        assert "[Summarized 1 conversation turns]" in compacted[1]["content"][0]["text"]
        assert events[-1]["fallback"] is True

    @pytest.mark.asyncio
    async def test_returns_original_when_everything_fails(self, monkeypatch):
        async def broken(history, config, summarizer, adapter):
            raise RuntimeError("boom")

        monkeypatch.setattr(service_module, "compact_history", broken)
        history = openai_history(5)
        service = CompactionService(
            OpenAIAdapter(), provider=FakeProvider(), config=_small_config()
        )

        assert await service.maybe_compact(history) is history
        assert service.compaction_count == 0
