"""Adapter for OpenAI Responses API history items."""

from typing import Any

from compactly.compaction.adapters.base import ItemKind, ProviderAdapter
from compactly.compaction.estimator import (
    IMAGE_TOKENS_HIGH_DETAIL,
    IMAGE_TOKENS_LOW_DETAIL,
    MESSAGE_OVERHEAD_TOKENS,
    TOOL_CALL_OVERHEAD_TOKENS,
    TOOL_RESULT_OVERHEAD_TOKENS,
    estimate_tokens,
    estimate_value_tokens,
)
from compactly.compaction.formatting import (
    describe_tool_output,
    render_tool_call,
    safe_json_parse_object,
)
from compactly.compaction.types import (
    PLACEHOLDER_USER_TEXT,
    ContextMetrics,
    ConversationItem,
)


def _lower(value: Any) -> str:
    return str(value or "").lower()


class OpenAIAdapter(ProviderAdapter):
    """
    OpenAI Responses format.

    Items are flat: user/assistant messages carry ``role``, while tool calls,
    tool outputs and reasoning are separate items tagged by ``type``.
    """

    name = "openai"

    def classify(self, item: ConversationItem) -> ItemKind:
        if not isinstance(item, dict):
            return ItemKind.UNKNOWN
        role = _lower(item.get("role"))
        kind = _lower(item.get("type"))

        if role == "user":
            return ItemKind.USER_MESSAGE
        if role == "assistant" or kind == "message":
            return ItemKind.ASSISTANT_MESSAGE
        if kind == "function_call":
            return ItemKind.TOOL_CALL
        if kind == "function_call_output":
            return ItemKind.TOOL_RESULT
        if kind == "reasoning":
            return ItemKind.REASONING
        if role in ("developer", "system"):
            return ItemKind.SYSTEM
        return ItemKind.UNKNOWN

    def extract_user_text(self, item: ConversationItem) -> str:
        content = item.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "\n".join(
                str(part.get("text") or "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "input_text"
            )
        return ""

    def _message_text(self, item: ConversationItem, sep: str) -> str:
        content = item.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return sep.join(
                str(part.get("text") or "")
                for part in content
                if isinstance(part, dict) and part.get("type") in ("output_text", "text")
            )
        output = item.get("output")
        return output if isinstance(output, str) else ""

    def extract_text(self, item: ConversationItem) -> str:
        kind = self.classify(item)

        if kind is ItemKind.ASSISTANT_MESSAGE:
            return self._message_text(item, "\n")
        if kind is ItemKind.TOOL_CALL:
            return render_tool_call(item.get("name"), item.get("arguments"))
        if kind is ItemKind.TOOL_RESULT:
            return f"[Tool Result] {describe_tool_output(item.get('output'))}"
        if kind is ItemKind.REASONING:
            summary = item.get("summary")
            if isinstance(summary, list):
                return "\n".join(
                    str(s.get("text") or "") for s in summary if isinstance(s, dict)
                )
        return ""

    def assistant_text(self, item: ConversationItem) -> str | None:
        if _lower(item.get("role")) != "assistant" or _lower(item.get("type")) != "message":
            return None
        content = item.get("content")
        if not isinstance(content, list):
            return ""
        return "".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "output_text"
        )

    def estimate_item_tokens(self, item: ConversationItem) -> int:
        tokens = MESSAGE_OVERHEAD_TOKENS
        kind = self.classify(item)
        content = item.get("content")

        if kind is ItemKind.USER_MESSAGE:
            if isinstance(content, str):
                tokens += estimate_tokens(content)
            elif isinstance(content, list):
                for part in content:
                    if not isinstance(part, dict):
                        continue
                    if part.get("type") == "input_text":
                        tokens += estimate_tokens(part.get("text"))
                    elif part.get("type") == "input_image":
                        detail = part.get("detail") or "auto"
                        tokens += (
                            IMAGE_TOKENS_LOW_DETAIL if detail == "low"
                            else IMAGE_TOKENS_HIGH_DETAIL
                        )
            return tokens

        if kind is ItemKind.ASSISTANT_MESSAGE:
            if isinstance(content, str):
                tokens += estimate_tokens(content)
            elif isinstance(content, list):
                for part in content:
                    if isinstance(part, dict) and part.get("type") in ("output_text", "text"):
                        tokens += estimate_tokens(part.get("text"))
            tokens += estimate_tokens(item.get("output"))
            return tokens

        if kind is ItemKind.TOOL_CALL:
            tokens += TOOL_CALL_OVERHEAD_TOKENS
            tokens += estimate_tokens(item.get("name"))
            tokens += estimate_value_tokens(item.get("arguments"))
            return tokens

        if kind is ItemKind.TOOL_RESULT:
            tokens += TOOL_RESULT_OVERHEAD_TOKENS
            output = item.get("output")
            if isinstance(output, str):
                tokens += estimate_tokens(output)
            elif isinstance(output, list):
                for part in output:
                    if isinstance(part, dict) and part.get("type") == "input_image":
                        tokens += IMAGE_TOKENS_HIGH_DETAIL
                    else:
                        tokens += estimate_value_tokens(part)
            else:
                tokens += estimate_value_tokens(output)
            return tokens

        if kind is ItemKind.REASONING:
            # Encrypted content is not part of the visible context
            summary = item.get("summary")
            if isinstance(summary, list):
                for s in summary:
                    if isinstance(s, dict):
                        tokens += estimate_tokens(s.get("text"))
            return tokens

        if kind is ItemKind.SYSTEM:
            return tokens + estimate_value_tokens(content)

        return tokens + estimate_value_tokens(item)

    def categorize_tokens(
        self,
        item: ConversationItem,
        tokens: int,
        metrics: ContextMetrics,
    ) -> None:
        kind = self.classify(item)
        if kind is ItemKind.USER_MESSAGE:
            metrics.user_message_tokens += tokens
        elif kind is ItemKind.ASSISTANT_MESSAGE:
            metrics.assistant_tokens += tokens
        elif kind is ItemKind.TOOL_CALL:
            metrics.tool_call_tokens += tokens
        elif kind is ItemKind.TOOL_RESULT:
            metrics.tool_result_tokens += tokens
        elif kind is ItemKind.REASONING:
            metrics.reasoning_tokens += tokens

    def tool_calls(self, item: ConversationItem) -> list[tuple[str, Any]]:
        if _lower(item.get("type")) != "function_call":
            return []
        arguments = item.get("arguments")
        if isinstance(arguments, str):
            args = safe_json_parse_object(arguments)
        else:
            args = arguments if isinstance(arguments, dict) else None
        return [(str(item.get("name") or ""), args)]

    def build_summary_message(self, text: str) -> ConversationItem:
        return {
            "role": "assistant",
            "type": "message",
            "content": [{"type": "output_text", "text": text}],
        }

    def build_placeholder_user_message(self) -> ConversationItem:
        return {"role": "user", "content": PLACEHOLDER_USER_TEXT}
