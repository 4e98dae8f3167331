"""Types for compaction system."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

# A single wire-format history item (OpenAI Responses item or Anthropic message param)
ConversationItem = dict[str, Any]

CompactionStrategy = Literal["per_turn", "rolling_summary", "adaptive"]

Provider = Literal["openai", "anthropic"]


@dataclass(frozen=True)
class CompactionConfig:
    """Configuration for compaction. Immutable per call."""

    # Maximum context tokens before compaction is required
    max_context_tokens: int = 200_000

    # Target token count to compact down to (trigger threshold)
    target_context_tokens: int = 100_000

    # Number of recent turns to always preserve intact
    preserve_last_turns: int = 20

    strategy: CompactionStrategy = "adaptive"

    # Maximum number of compaction passes per invocation
    max_iterations: int = 2

    enabled: bool = True

    # Model to use for summarization (pass-through, unused by the engine)
    summary_model: str = "claude-sonnet-4.5"


@dataclass
class Turn:
    """One user message plus all assistant/tool activity up to the next user message."""

    user_message: ConversationItem
    assistant_and_tools: list[ConversationItem] = field(default_factory=list)
    estimated_tokens: int = 0


@dataclass
class ContextMetrics:
    """Per-category token totals for a history."""

    total_tokens: int = 0
    user_message_tokens: int = 0
    assistant_tokens: int = 0
    tool_call_tokens: int = 0
    tool_result_tokens: int = 0
    reasoning_tokens: int = 0

    def breakdown(self) -> dict[str, int]:
        return {
            "user": self.user_message_tokens,
            "assistant": self.assistant_tokens,
            "tool_calls": self.tool_call_tokens,
            "tool_results": self.tool_result_tokens,
            "reasoning": self.reasoning_tokens,
        }


@dataclass
class CompactionTargets:
    """Which turns to summarize vs preserve."""

    to_summarize: list[Turn] = field(default_factory=list)
    to_preserve: list[Turn] = field(default_factory=list)
    # Legacy top-level summary turn, re-emitted verbatim at the front
    existing_summary: Turn | None = None


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    history: list[ConversationItem]
    compacted: bool
    turns_summarized: int
    original_tokens: int
    new_tokens: int
    summary_text: str | None = None


@dataclass
class SummarizerOptions:
    """Options controlling how turns are rendered for the summarizer."""

    max_summary_tokens: int = 2000
    include_tool_names: bool = True
    include_file_paths: bool = True


@dataclass(frozen=True)
class ModelInfo:
    """Context sizing for a known chat model."""

    name: str
    provider: Provider
    api_name: str | None = None
    context_window_tokens: int | None = None
    compaction_target_tokens: int | None = None


class SummarizerError(Exception):
    """Raised when the summarization model fails or returns nothing usable."""


# Summarizer(turns, existing_summary) -> new summary text
Summarizer = Callable[[list[Turn], str | None], Awaitable[str]]


# Minimum turns required to attempt compaction (1 to summarize + 1 to keep)
MIN_TURNS_FOR_COMPACTION = 2
# Minimum turns to always keep, even if preserve_last_turns is lower
MIN_TURNS_TO_PRESERVE = 1

SUMMARY_MARKER_PREFIX = (
    "[CONVERSATION SUMMARY - Previous context has been summarized to save space]\n\n"
)
ROLLING_SUMMARY_TAG = "[Rolling Summary]"
BUILDING_ON_PREVIOUS_NOTE = "[Building on previous summary]\n\n"
BUILDING_ON_PREVIOUS_ROLLING_NOTE = "[Building on previous rolling summary]\n\n"

PLACEHOLDER_USER_TEXT = "[system initialization]"

DEFAULT_OPENAI_COMPACTION_CONFIG = CompactionConfig(
    max_context_tokens=272_000,
    target_context_tokens=180_000,
    preserve_last_turns=20,
    summary_model="gpt-5-mini",
    enabled=True,
    strategy="adaptive",
    max_iterations=2,
)

DEFAULT_ANTHROPIC_COMPACTION_CONFIG = CompactionConfig(
    max_context_tokens=200_000,
    target_context_tokens=100_000,
    preserve_last_turns=20,
    summary_model="claude-sonnet-4.5",
    enabled=True,
    strategy="adaptive",
    max_iterations=2,
)

DEFAULT_COMPACTION_CONFIGS: dict[str, CompactionConfig] = {
    "openai": DEFAULT_OPENAI_COMPACTION_CONFIG,
    "anthropic": DEFAULT_ANTHROPIC_COMPACTION_CONFIG,
}

MODELS: dict[str, ModelInfo] = {
    "gpt-5.1-codex-max": ModelInfo(
        name="gpt-5.1-codex-max",
        provider="openai",
        context_window_tokens=272_000,
        compaction_target_tokens=180_000,
    ),
    "gpt-5.1": ModelInfo(
        name="gpt-5.1",
        provider="openai",
        context_window_tokens=272_000,
        compaction_target_tokens=180_000,
    ),
    "gpt-5.2": ModelInfo(
        name="gpt-5.2",
        provider="openai",
        context_window_tokens=272_000,
        compaction_target_tokens=180_000,
    ),
    "gpt-5-pro": ModelInfo(
        name="gpt-5-pro",
        provider="openai",
        context_window_tokens=272_000,
        compaction_target_tokens=180_000,
    ),
    "claude-opus-4.5": ModelInfo(
        name="claude-opus-4.5",
        provider="anthropic",
        api_name="claude-opus-4-5-20251101",
        context_window_tokens=200_000,
        compaction_target_tokens=100_000,
    ),
    "claude-sonnet-4.5": ModelInfo(
        name="claude-sonnet-4.5",
        provider="anthropic",
        api_name="claude-sonnet-4-5-20250929",
        context_window_tokens=200_000,
        compaction_target_tokens=100_000,
    ),
}


def is_summary_message(content: Any) -> bool:
    """Check if text is a compaction summary."""
    if not content or not isinstance(content, str):
        return False
    return content.startswith(SUMMARY_MARKER_PREFIX) or "[CONVERSATION SUMMARY" in content


def strip_summary_marker(text: str) -> str:
    """Remove the first marker prefix occurrence and surrounding whitespace."""
    return text.replace(SUMMARY_MARKER_PREFIX, "", 1).strip()
