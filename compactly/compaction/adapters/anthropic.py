"""Adapter for Anthropic Messages API history items."""

from typing import Any

from compactly.compaction.adapters.base import ItemKind, ProviderAdapter
from compactly.compaction.estimator import (
    MESSAGE_OVERHEAD_TOKENS,
    TOOL_CALL_OVERHEAD_TOKENS,
    TOOL_RESULT_OVERHEAD_TOKENS,
    estimate_tokens,
    estimate_value_tokens,
)
from compactly.compaction.formatting import (
    pick_important_fields,
    safe_compact_stringify,
)
from compactly.compaction.types import (
    PLACEHOLDER_USER_TEXT,
    ContextMetrics,
    ConversationItem,
)

# Anthropic image cost depends on size; this stays conservative
ANTHROPIC_IMAGE_TOKENS = 1000

# Thinking blocks are long; only a prefix goes to the summarizer
MAX_THINKING_CHARS = 300


def _blocks(item: ConversationItem) -> list[dict[str, Any]]:
    content = item.get("content")
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, dict)]


def _block_type(block: Any) -> str:
    return str(block.get("type") or "").lower() if isinstance(block, dict) else ""


class AnthropicAdapter(ProviderAdapter):
    """
    Anthropic Messages format.

    Tool results come back as ``role: "user"`` messages, so a user-role item
    whose blocks are all ``tool_result`` belongs to the assistant side of the
    turn rather than starting a new one.
    """

    name = "anthropic"

    def classify(self, item: ConversationItem) -> ItemKind:
        if not isinstance(item, dict):
            return ItemKind.UNKNOWN
        role = item.get("role")

        if role == "user":
            content = item.get("content")
            if (
                isinstance(content, list)
                and content
                and all(_block_type(b) == "tool_result" for b in content)
            ):
                return ItemKind.TOOL_RESULT
            return ItemKind.USER_MESSAGE
        if role == "assistant":
            return ItemKind.ASSISTANT_MESSAGE
        if role == "system":
            return ItemKind.SYSTEM
        return ItemKind.UNKNOWN

    def extract_user_text(self, item: ConversationItem) -> str:
        content = item.get("content")
        if isinstance(content, str):
            return content
        return "\n".join(
            str(b.get("text") or "") for b in _blocks(item) if _block_type(b) == "text"
        )

    def extract_text(self, item: ConversationItem) -> str:
        content = item.get("content")
        if not isinstance(content, list):
            return content if isinstance(content, str) else ""

        parts: list[str] = []
        for block in _blocks(item):
            kind = _block_type(block)
            if kind == "text":
                parts.append(str(block.get("text") or ""))
            elif kind == "thinking":
                thinking = block.get("thinking")
                if thinking:
                    parts.append(f"[Thinking] {str(thinking)[:MAX_THINKING_CHARS]}")
            elif kind == "tool_use":
                tool_input = block.get("input")
                picked = pick_important_fields(tool_input) if isinstance(tool_input, dict) else {}
                if picked:
                    rendered = safe_compact_stringify(picked, 800)
                elif isinstance(tool_input, str):
                    rendered = tool_input
                else:
                    rendered = safe_compact_stringify(tool_input or {}, 800)
                parts.append(f"[Tool Call: {block.get('name')}] {rendered[:500]}")
            elif kind == "tool_result":
                result = block.get("content")
                if not isinstance(result, str):
                    result = safe_compact_stringify(result or "", 1200)
                parts.append(f"[Tool Result] {str(result or '').strip()[:600]}")
        return "\n".join(parts)

    def assistant_text(self, item: ConversationItem) -> str | None:
        if item.get("role") != "assistant" or not isinstance(item.get("content"), list):
            return None
        return "".join(
            str(b.get("text") or "") for b in _blocks(item) if _block_type(b) == "text"
        )

    def _estimate_block_tokens(self, block: dict[str, Any]) -> int:
        kind = _block_type(block)
        if kind == "text":
            return estimate_tokens(block.get("text"))
        if kind == "thinking":
            return estimate_tokens(block.get("thinking"))
        if kind == "tool_use":
            return (
                TOOL_CALL_OVERHEAD_TOKENS
                + estimate_tokens(block.get("name"))
                + estimate_value_tokens(block.get("input"))
            )
        if kind == "tool_result":
            return TOOL_RESULT_OVERHEAD_TOKENS + estimate_value_tokens(block.get("content"))
        if kind == "image":
            return ANTHROPIC_IMAGE_TOKENS
        return estimate_value_tokens(block)

    def estimate_item_tokens(self, item: ConversationItem) -> int:
        tokens = MESSAGE_OVERHEAD_TOKENS
        content = item.get("content")
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict):
                    tokens += self._estimate_block_tokens(block)
        elif isinstance(content, str):
            tokens += estimate_tokens(content)
        return tokens

    def categorize_tokens(
        self,
        item: ConversationItem,
        tokens: int,
        metrics: ContextMetrics,
    ) -> None:
        role = item.get("role")
        content = item.get("content")

        if role == "user":
            if any(_block_type(b) == "tool_result" for b in _blocks(item)):
                metrics.tool_result_tokens += tokens
            else:
                metrics.user_message_tokens += tokens
        elif role == "assistant":
            if not isinstance(content, list):
                metrics.assistant_tokens += tokens
                return
            for block in _blocks(item):
                kind = _block_type(block)
                block_tokens = self._estimate_block_tokens(block)
                if kind == "thinking":
                    metrics.reasoning_tokens += block_tokens
                elif kind == "tool_use":
                    metrics.tool_call_tokens += block_tokens
                else:
                    metrics.assistant_tokens += block_tokens

    def tool_calls(self, item: ConversationItem) -> list[tuple[str, Any]]:
        calls: list[tuple[str, Any]] = []
        for block in _blocks(item):
            if _block_type(block) == "tool_use" and block.get("name"):
                tool_input = block.get("input")
                calls.append((str(block["name"]), tool_input if isinstance(tool_input, dict) else None))
        return calls

    def build_summary_message(self, text: str) -> ConversationItem:
        return {"role": "assistant", "content": [{"type": "text", "text": text}]}

    def build_placeholder_user_message(self) -> ConversationItem:
        return {"role": "user", "content": [{"type": "text", "text": PLACEHOLDER_USER_TEXT}]}
