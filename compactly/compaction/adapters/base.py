"""Provider adapter interface for wire-format specific history handling."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from compactly.compaction.types import ContextMetrics, ConversationItem


class ItemKind(str, Enum):
    """What a history item is, decided once per item."""
    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    REASONING = "reasoning"
    SYSTEM = "system"            # developer/system prompts inside the history
    UNKNOWN = "unknown"          # not recognizable for this provider


# Kinds that belong to the assistant side of a turn
TURN_BODY_KINDS = frozenset({
    ItemKind.ASSISTANT_MESSAGE,
    ItemKind.TOOL_CALL,
    ItemKind.TOOL_RESULT,
    ItemKind.REASONING,
})


class ProviderAdapter(ABC):
    """
    Classification and extraction capability for one provider's history format.

    The compaction engine never inspects raw item fields itself; it goes
    through an adapter so both providers share one implementation.
    """

    name: str = ""

    @abstractmethod
    def classify(self, item: ConversationItem) -> ItemKind:
        """Classify a history item."""
        pass

    @abstractmethod
    def extract_user_text(self, item: ConversationItem) -> str:
        """Get the plain text of a user message."""
        pass

    @abstractmethod
    def extract_text(self, item: ConversationItem) -> str:
        """Render an assistant or tool item as text for summarization."""
        pass

    @abstractmethod
    def assistant_text(self, item: ConversationItem) -> str | None:
        """Concatenated text of an assistant message, or None for other items."""
        pass

    @abstractmethod
    def estimate_item_tokens(self, item: ConversationItem) -> int:
        """Estimate the token cost of a single item."""
        pass

    @abstractmethod
    def categorize_tokens(
        self,
        item: ConversationItem,
        tokens: int,
        metrics: ContextMetrics,
    ) -> None:
        """Add an item's tokens to the matching metric categories."""
        pass

    @abstractmethod
    def tool_calls(self, item: ConversationItem) -> list[tuple[str, Any]]:
        """List (tool name, arguments) pairs invoked by an item."""
        pass

    @abstractmethod
    def build_summary_message(self, text: str) -> ConversationItem:
        """Build an assistant message carrying summary text."""
        pass

    @abstractmethod
    def build_placeholder_user_message(self) -> ConversationItem:
        """Build the synthetic user message for orphaned assistant/tool items."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
