"""Tests for the LLM and fallback summarizers."""

from typing import Any

import pytest

from compactly.compaction.adapters import OpenAIAdapter
from compactly.compaction.segmentation import segment_into_turns
from compactly.compaction.summarizer import (
    SUMMARIZE_SYSTEM_PROMPT,
    build_summarization_prompt,
    create_fallback_summarizer,
    create_llm_summarizer,
)
from compactly.compaction.types import SummarizerError, SummarizerOptions
from compactly.providers.base import LLMProvider, LLMResponse
from history_builders import openai_history, openai_user


class FakeProvider(LLMProvider):
    """Provider double returning canned responses."""

    def __init__(self, response: LLMResponse):
        super().__init__(api_key=None)
        self.response = response
        self.requests: list[dict[str, Any]] = []

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.2):
        self.requests.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        return self.response

    def get_default_model(self) -> str:
        return "fake"


class TestBuildSummarizationPrompt:
    def test_without_existing_summary(self):
        prompt = build_summarization_prompt("TURNS")
        assert prompt == "Please summarize the following conversation turns:\n\nTURNS"

    def test_with_existing_summary(self):
        prompt = build_summarization_prompt("TURNS", "OLD")
        assert "[Previous Summary to incorporate]\nOLD" in prompt
        assert prompt.endswith("[New turns to add to summary]\nTURNS")


class TestLLMSummarizer:
    def setup_method(self):
        self.adapter = OpenAIAdapter()
        self.turns = segment_into_turns(openai_history(2, body_chars=20), self.adapter)

    @pytest.mark.asyncio
    async def test_returns_stripped_summary(self):
        provider = FakeProvider(LLMResponse(content="  ## Summary\n- did things \n"))
        summarize = create_llm_summarizer(
            provider, "gpt-5-mini", self.adapter, SummarizerOptions(max_summary_tokens=500)
        )

        summary = await summarize(self.turns, None)

        assert summary == "## Summary\n- did things"
        request = provider.requests[0]
        assert request["model"] == "gpt-5-mini"
        assert request["max_tokens"] == 500
        assert request["messages"][0] == {"role": "system", "content": SUMMARIZE_SYSTEM_PROMPT}
        assert "--- Turn 1 ---" in request["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_existing_summary_in_prompt(self):
        provider = FakeProvider(LLMResponse(content="new"))
        summarize = create_llm_summarizer(provider, "m", self.adapter)

        await summarize(self.turns, "previous facts")

        assert "previous facts" in provider.requests[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_error_response_raises(self):
        provider = FakeProvider(LLMResponse(content="Error calling LLM: boom", finish_reason="error"))
        summarize = create_llm_summarizer(provider, "m", self.adapter)

        with pytest.raises(SummarizerError, match="boom"):
            await summarize(self.turns, None)

    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        provider = FakeProvider(LLMResponse(content="   "))
        summarize = create_llm_summarizer(provider, "m", self.adapter)

        with pytest.raises(SummarizerError):
            await summarize(self.turns, None)


class TestFallbackSummarizer:
    def setup_method(self):
        self.adapter = OpenAIAdapter()

    @pytest.mark.asyncio
    async def test_lists_user_requests(self):
        turns = segment_into_turns(openai_history(3, body_chars=10), self.adapter)
        summary = await create_fallback_summarizer(self.adapter)(turns, None)

        assert summary.startswith("[Summarized 3 conversation turns]")
        assert "- question 1" in summary
        assert "- question 3" in summary

    @pytest.mark.asyncio
    async def test_keeps_previous_summary_prefix(self):
        turns = segment_into_turns(openai_history(1, body_chars=10), self.adapter)
        summary = await create_fallback_summarizer(self.adapter)(turns, "p" * 5000)

        assert summary.startswith("[Previous context preserved]\n" + "p" * 1000 + "\n")
        assert "p" * 1001 not in summary

    @pytest.mark.asyncio
    async def test_caps_request_list(self):
        history = []
        for i in range(15):
            history.append(openai_user(f"request {i}\nwith newline"))
        turns = segment_into_turns(history, self.adapter)
        summary = await create_fallback_summarizer(self.adapter)(turns, None)

        assert "- request 0 with newline" in summary
        assert "- request 10" not in summary
        assert summary.endswith("... and 5 more requests")
