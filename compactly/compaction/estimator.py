"""Token estimation for messages.

Uses character-based heuristics so no tokenizer is needed. These are
approximations; actual counts vary by model. The ratio overestimates
slightly to stay conservative.
"""

import math
from typing import TYPE_CHECKING, Any

from compactly.compaction.types import ContextMetrics, ConversationItem, Turn

if TYPE_CHECKING:
    from compactly.compaction.adapters.base import ProviderAdapter

# English averages ~4 chars/token, code and JSON closer to 3-3.5
CHARS_PER_TOKEN = 3.5

# Structural overhead (role, separators, etc.)
MESSAGE_OVERHEAD_TOKENS = 4
TOOL_CALL_OVERHEAD_TOKENS = 10
TOOL_RESULT_OVERHEAD_TOKENS = 8

# Flat image costs, never priced by base64 length
IMAGE_TOKENS_HIGH_DETAIL = 765
IMAGE_TOKENS_LOW_DETAIL = 85

# Bounds for the recursive value walk
MAX_DEPTH = 4
MAX_ARRAY_ITEMS = 64
MAX_OBJECT_KEYS = 64


def estimate_tokens(text: Any) -> int:
    """
    Estimate the number of tokens in a text string.

    Args:
        text: The text to estimate tokens for. Non-strings count as zero.

    Returns:
        Estimated token count.
    """
    if not text or not isinstance(text, str):
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _is_image_payload(value: dict[str, Any]) -> bool:
    kind = value.get("type")
    if isinstance(kind, str) and kind.lower() in ("input_image", "image"):
        return True
    image_url = value.get("image_url")
    return (
        isinstance(image_url, str)
        and image_url.startswith("data:")
        and "base64," in image_url
    )


def _scalar_tokens(value: Any) -> int:
    try:
        return estimate_tokens(str(value))
    except Exception:
        # str() on huge ints hits the interpreter's digit limit
        if isinstance(value, int):
            digits = value.bit_length() * math.log10(2)
            return math.ceil(digits / CHARS_PER_TOKEN) + 1
        return estimate_tokens("[unreadable]")


def estimate_value_tokens(value: Any) -> int:
    """
    Estimate tokens for an arbitrary nested value.

    Never serializes the whole value: base64 payloads would allocate huge
    strings and cyclic structures would never terminate. The walk is bounded
    in depth and breadth, and anything it refuses to enter is charged a
    small placeholder cost instead of zero.

    Args:
        value: Any JSON-like value (dicts, lists, scalars).

    Returns:
        Estimated token count.
    """
    seen: set[int] = set()

    def walk(v: Any, depth: int) -> int:
        if v is None:
            return 0
        if isinstance(v, str):
            return estimate_tokens(v)
        if isinstance(v, (bool, int, float)):
            return _scalar_tokens(v)

        if depth <= 0:
            return estimate_tokens("[…]")

        if isinstance(v, dict):
            if _is_image_payload(v):
                return IMAGE_TOKENS_HIGH_DETAIL
            if id(v) in seen:
                return estimate_tokens("[circular]")
            seen.add(id(v))

            total = 0
            keys = list(v.keys())
            limit = min(len(keys), MAX_OBJECT_KEYS)
            for key in keys[:limit]:
                total += _scalar_tokens(key)
                total += walk(v[key], depth - 1)
            if len(keys) > limit:
                total += estimate_tokens(f"[+{len(keys) - limit} keys]")
            return total

        if isinstance(v, (list, tuple)):
            if id(v) in seen:
                return estimate_tokens("[circular]")
            seen.add(id(v))

            total = 0
            limit = min(len(v), MAX_ARRAY_ITEMS)
            for entry in v[:limit]:
                total += walk(entry, depth - 1)
            if len(v) > limit:
                total += estimate_tokens(f"[+{len(v) - limit} more]")
            return total

        return _scalar_tokens(v)

    return walk(value, MAX_DEPTH)


def estimate_message_tokens(message: ConversationItem, adapter: "ProviderAdapter") -> int:
    """
    Estimate tokens for a single message.

    Args:
        message: Wire-format history item.
        adapter: Provider adapter that knows the item shape.

    Returns:
        Estimated token count, zero for anything that is not a dict.
    """
    if not isinstance(message, dict):
        return 0
    try:
        return adapter.estimate_item_tokens(message)
    except Exception:
        return MESSAGE_OVERHEAD_TOKENS + estimate_value_tokens(message)


def estimate_messages_tokens(
    messages: list[ConversationItem],
    adapter: "ProviderAdapter",
) -> int:
    """Estimate total tokens for a list of messages."""
    return sum(estimate_message_tokens(msg, adapter) for msg in messages)


def estimate_history_metrics(
    history: list[ConversationItem],
    adapter: "ProviderAdapter",
) -> ContextMetrics:
    """
    Estimate per-category token totals for a history.

    Args:
        history: Wire-format history items.
        adapter: Provider adapter.

    Returns:
        ContextMetrics with total and per-category counts.
    """
    metrics = ContextMetrics()
    for item in history:
        tokens = estimate_message_tokens(item, adapter)
        metrics.total_tokens += tokens
        if isinstance(item, dict):
            adapter.categorize_tokens(item, tokens, metrics)
    return metrics


def estimate_turn_tokens(turn: Turn, adapter: "ProviderAdapter") -> int:
    """Estimate tokens for a turn (user message plus all assistant/tool items)."""
    tokens = estimate_message_tokens(turn.user_message, adapter)
    for item in turn.assistant_and_tools:
        tokens += estimate_message_tokens(item, adapter)
    return tokens


def exceeds_token_threshold(tokens: int, threshold: int) -> bool:
    """Check if token count exceeds threshold."""
    return tokens > threshold


def tokens_to_remove(current_tokens: int, target_tokens: int) -> int:
    """Calculate how many tokens need to be removed to reach target."""
    return max(0, current_tokens - target_tokens)
