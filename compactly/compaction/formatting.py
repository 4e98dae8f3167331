"""Render turns as compact text for the summarization prompt."""

import json
from typing import TYPE_CHECKING, Any

from compactly.compaction.types import SummarizerOptions, Turn, is_summary_message

if TYPE_CHECKING:
    from compactly.compaction.adapters.base import ProviderAdapter

# Argument keys worth keeping when a tool call is rendered for the summarizer
IMPORTANT_FIELDS = (
    "filePath", "path", "paths", "oldPath", "newPath",
    "pattern", "files", "query", "url",
    "terminal_id", "terminalId", "durationMs", "lines", "bytes",
    "model", "sessionId",
)

MAX_STRING_CHARS = 4000
MAX_USER_CHARS = 500
MAX_ITEM_CHARS = 800
MAX_FILE_PATHS = 20


def pick_important_fields(obj: Any) -> dict[str, Any]:
    """Keep only whitelisted keys plus size hints for bulky text fields."""
    out: dict[str, Any] = {}
    if not isinstance(obj, dict):
        return out

    for key in IMPORTANT_FIELDS:
        if key in obj:
            out[key] = obj[key]

    # Size hints for diffs/creates without copying the blobs
    if isinstance(obj.get("content"), str):
        out["contentChars"] = len(obj["content"])
    if isinstance(obj.get("oldText"), str):
        out["oldTextChars"] = len(obj["oldText"])
    if isinstance(obj.get("newText"), str):
        out["newTextChars"] = len(obj["newText"])
    return out


def safe_json_parse_object(raw: Any, max_len: int = 8000) -> dict[str, Any] | None:
    """Parse a JSON object string, returning None for anything else or anything too large."""
    text = "" if raw is None else str(raw)
    if not text or len(text) > max_len:
        return None
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def _sanitize(value: Any, seen: set[int]) -> Any:
    if isinstance(value, str):
        if value.startswith("data:") and "base64," in value:
            return f"[data-url omitted ({len(value)} chars)]"
        if len(value) > MAX_STRING_CHARS:
            omitted = len(value) - MAX_STRING_CHARS
            return f"{value[:MAX_STRING_CHARS]}…({omitted} chars omitted)"
        return value
    if isinstance(value, dict):
        if id(value) in seen:
            return "[circular]"
        seen.add(id(value))
        return {str(k): _sanitize(v, seen) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        if id(value) in seen:
            return "[circular]"
        seen.add(id(value))
        return [_sanitize(v, seen) for v in value]
    return value


def safe_compact_stringify(value: Any, max_len: int = 1200) -> str:
    """
    Serialize a value to compact JSON for the summarizer.

    Data URLs are replaced by a size note, long strings are clipped and
    cycles are cut. The result is truncated to ``max_len`` characters.

    Args:
        value: Any JSON-like value.
        max_len: Maximum length of the returned string.

    Returns:
        The JSON text, or "[unserializable]" if serialization fails.
    """
    try:
        text = json.dumps(
            _sanitize(value, set()),
            ensure_ascii=False,
            separators=(",", ":"),
            default=str,
        )
    except (TypeError, ValueError, RecursionError):
        return "[unserializable]"
    if not text:
        return ""
    return f"{text[:max_len]}…" if len(text) > max_len else text


def describe_tool_output(output: Any) -> str:
    """Render a tool result compactly, keeping errors prominent."""
    if isinstance(output, str):
        trimmed = output.strip()
        if trimmed.lower().startswith("error"):
            return trimmed[:800]
        return trimmed[:600]

    if isinstance(output, list):
        parts = output[:12]
        described: list[str] = []
        for part in parts:
            if isinstance(part, dict) and part.get("type") == "input_image":
                filename = part.get("filename")
                suffix = f":{filename}" if isinstance(filename, str) and filename else ""
                described.append(f"[image{suffix}]")
            else:
                rendered = safe_compact_stringify(part, 400)
                if rendered:
                    described.append(rendered)
        more = f" …(+{len(output) - len(parts)} more)" if len(output) > len(parts) else ""
        return f"{' '.join(described)}{more}".strip()

    if isinstance(output, dict):
        picked = pick_important_fields(output)
        return safe_compact_stringify(picked or output, 1200)

    return "" if output is None else str(output)


def render_tool_call(name: Any, arguments: Any) -> str:
    """Render a tool call as ``[Tool Call: name] {important args}``."""
    args_obj: dict[str, Any] | None = None
    if isinstance(arguments, str):
        args_obj = safe_json_parse_object(arguments)
    elif isinstance(arguments, dict):
        args_obj = arguments

    picked = pick_important_fields(args_obj) if args_obj else {}
    if picked:
        rendered = safe_compact_stringify(picked, 800)
    elif isinstance(arguments, str):
        rendered = arguments[:500]
    else:
        rendered = safe_compact_stringify(arguments or {}, 800)
    return f"[Tool Call: {name}] {rendered[:500]}"


def format_turns_for_summary(
    turns: list[Turn],
    adapter: "ProviderAdapter",
    options: SummarizerOptions | None = None,
) -> str:
    """
    Format turns for the summarization prompt.

    Args:
        turns: Turns to render.
        adapter: Provider adapter used to extract text.
        options: Which metadata trailers to append.

    Returns:
        Text with one ``--- Turn N ---`` block per non-empty turn.
    """
    options = options or SummarizerOptions()
    parts: list[str] = []
    tool_names: list[str] = []
    file_paths: list[str] = []

    for index, turn in enumerate(turns, start=1):
        turn_parts: list[str] = []

        user_text = adapter.extract_user_text(turn.user_message)
        if user_text and not is_summary_message(user_text):
            turn_parts.append(f"USER: {user_text[:MAX_USER_CHARS]}")

        for item in turn.assistant_and_tools:
            text = adapter.extract_text(item)
            if text:
                turn_parts.append(text[:MAX_ITEM_CHARS])

            for name, args in adapter.tool_calls(item):
                if options.include_tool_names and name and name not in tool_names:
                    tool_names.append(name)
                if options.include_file_paths and isinstance(args, dict):
                    for key in ("filePath", "path"):
                        path = args.get(key)
                        if isinstance(path, str) and path and path not in file_paths:
                            file_paths.append(path)

        if turn_parts:
            parts.append(f"--- Turn {index} ---\n" + "\n".join(turn_parts))

    result = "\n\n".join(parts)

    if options.include_tool_names and tool_names:
        result += f"\n\n[Tools used: {', '.join(tool_names)}]"
    if options.include_file_paths and file_paths:
        result += f"\n\n[Files involved: {', '.join(file_paths[:MAX_FILE_PATHS])}]"

    return result
