"""Summarizers used by the compaction engine."""

from typing import TYPE_CHECKING

from loguru import logger

from compactly.compaction.adapters.base import ProviderAdapter
from compactly.compaction.formatting import format_turns_for_summary
from compactly.compaction.types import (
    Summarizer,
    SummarizerError,
    SummarizerOptions,
    Turn,
)

if TYPE_CHECKING:
    from compactly.providers.base import LLMProvider


SUMMARIZE_SYSTEM_PROMPT = """You are a conversation summarizer. Your task is to create a concise summary of a conversation between a user and an AI coding assistant.

Guidelines:
- Preserve ALL key facts, decisions, and outcomes
- Focus the summary on the assistant's responses and tool calls/results; user messages will be preserved separately in full
- Include file paths that were created, modified, or discussed
- Include tool names that were used and their purposes
- Preserve any error messages or issues encountered and their resolutions
- Keep track of the user's goals and whether they were achieved
- Summarize code changes by their purpose, not the full code
- Be concise but comprehensive - the summary will be used as context for continuing the conversation
- Use bullet points for clarity
- Do NOT include pleasantries or filler text

Format your summary as:
## Summary of Previous Conversation

### User Goals
- [List the user's objectives]

### Actions Taken
- [List key actions and their outcomes]

### Files Modified
- [List files that were created/modified with brief descriptions]

### Current State
- [Describe the current state of the work]

### Important Context
- [Any other critical information for continuing the conversation]"""


def build_summarization_prompt(formatted_turns: str, existing_summary: str | None = None) -> str:
    """
    Build the user prompt for summarization.

    Args:
        formatted_turns: Output of ``format_turns_for_summary``.
        existing_summary: Optional previous summary to incorporate.

    Returns:
        Prompt text.
    """
    prompt = "Please summarize the following conversation turns:\n\n"
    if existing_summary:
        prompt += (
            f"[Previous Summary to incorporate]\n{existing_summary}\n\n"
            "[New turns to add to summary]\n"
        )
    return prompt + formatted_turns


def create_llm_summarizer(
    provider: "LLMProvider",
    model: str,
    adapter: ProviderAdapter,
    options: SummarizerOptions | None = None,
) -> Summarizer:
    """
    Create a summarizer that calls an LLM.

    Args:
        provider: LLM provider.
        model: Model to use (should be fast/cheap).
        adapter: Provider adapter used to render turns.
        options: Rendering and output options.

    Returns:
        Summarizer coroutine. It raises SummarizerError when the model
        errors out or returns nothing.
    """
    options = options or SummarizerOptions()

    async def summarize(turns: list[Turn], existing_summary: str | None = None) -> str:
        formatted = format_turns_for_summary(turns, adapter, options)
        user_prompt = build_summarization_prompt(formatted, existing_summary)

        logger.debug(f"Summarizing {len(turns)} turn(s) with model {model}")

        response = await provider.chat(
            messages=[
                {"role": "system", "content": SUMMARIZE_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            model=model,
            max_tokens=options.max_summary_tokens,
        )

        if response.finish_reason == "error":
            raise SummarizerError(response.content or "Summarization request failed")

        summary = (response.content or "").strip()
        if not summary:
            raise SummarizerError("Empty summary response from model")

        logger.debug(f"Generated summary of {len(summary)} characters")
        return summary

    return summarize


def create_fallback_summarizer(adapter: ProviderAdapter) -> Summarizer:
    """
    Create a summarizer that needs no LLM.

    It keeps a clipped copy of the previous summary and lists the user
    requests of the summarized turns. Used when no provider is configured or
    when LLM summarization fails.
    """

    async def summarize(turns: list[Turn], existing_summary: str | None = None) -> str:
        parts: list[str] = []

        if existing_summary:
            parts.append("[Previous context preserved]\n" + existing_summary[:1000])

        parts.append(f"[Summarized {len(turns)} conversation turns]")

        requests: list[str] = []
        for turn in turns:
            text = adapter.extract_user_text(turn.user_message).replace("\n", " ").strip()
            if text:
                requests.append(f"- {text[:100]}")

        if requests:
            parts.append("\nUser requests in summarized turns:")
            parts.append("\n".join(requests[:10]))
            if len(requests) > 10:
                parts.append(f"... and {len(requests) - 10} more requests")

        return "\n".join(parts)

    return summarize
