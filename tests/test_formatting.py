"""Tests for summary formatting helpers."""

from compactly.compaction.adapters import AnthropicAdapter, OpenAIAdapter
from compactly.compaction.formatting import (
    describe_tool_output,
    format_turns_for_summary,
    pick_important_fields,
    render_tool_call,
    safe_compact_stringify,
    safe_json_parse_object,
)
from compactly.compaction.segmentation import segment_into_turns
from compactly.compaction.types import SUMMARY_MARKER_PREFIX, SummarizerOptions, Turn
from history_builders import (
    anthropic_history,
    openai_assistant,
    openai_call,
    openai_output,
    openai_user,
)


class TestPickImportantFields:
    def test_keeps_whitelisted_keys_and_size_hints(self):
        picked = pick_important_fields({
            "path": "a.py",
            "content": "x" * 50,
            "newText": "abc",
            "irrelevant": 1,
        })
        assert picked == {"path": "a.py", "contentChars": 50, "newTextChars": 3}

    def test_non_dict(self):
        assert pick_important_fields(["path"]) == {}


class TestSafeJsonParseObject:
    def test_object(self):
        assert safe_json_parse_object('{"a": 1}') == {"a": 1}

    def test_rejects_non_objects_and_garbage(self):
        assert safe_json_parse_object("[1, 2]") is None
        assert safe_json_parse_object("{oops") is None
        assert safe_json_parse_object(None) is None

    def test_rejects_oversized(self):
        raw = '{"a": "' + "x" * 9000 + '"}'
        assert safe_json_parse_object(raw) is None


class TestSafeCompactStringify:
    def test_compact_json(self):
        assert safe_compact_stringify({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_truncates(self):
        text = safe_compact_stringify({"a": "x" * 100}, max_len=20)
        assert len(text) == 21
        assert text.endswith("…")

    def test_data_url_replaced(self):
        text = safe_compact_stringify({"image": "data:image/png;base64," + "A" * 5000})
        assert "data-url omitted" in text
        assert "AAAA" not in text

    def test_cycle_is_cut(self):
        node: dict = {}
        node["self"] = node
        assert safe_compact_stringify(node) == '{"self":"[circular]"}'

    def test_unknown_objects_use_str(self):
        assert safe_compact_stringify({"v": object}) == '{"v":"<class \'object\'>"}'


class TestDescribeToolOutput:
    def test_string_trimmed(self):
        assert describe_tool_output("  ok  ") == "ok"
        assert len(describe_tool_output("z" * 5000)) == 600

    def test_errors_get_more_room(self):
        assert len(describe_tool_output("Error " + "z" * 5000)) == 800

    def test_list_with_images(self):
        output = [{"type": "input_image", "filename": "shot.png"}, {"type": "text", "text": "hi"}]
        described = describe_tool_output(output)
        assert described.startswith("[image:shot.png]")
        assert "hi" in described

    def test_long_list_notes_remaining(self):
        described = describe_tool_output(list(range(20)))
        assert described.endswith("…(+8 more)")

    def test_dict_keeps_important_fields(self):
        assert describe_tool_output({"path": "a.py", "noise": "n"}) == '{"path":"a.py"}'

    def test_none(self):
        assert describe_tool_output(None) == ""


class TestRenderToolCall:
    def test_unparseable_arguments_kept_raw(self):
        assert render_tool_call("run", "ls -la") == "[Tool Call: run] ls -la"

    def test_arguments_without_important_fields(self):
        assert render_tool_call("run", {"cmd": "ls"}) == '[Tool Call: run] {"cmd":"ls"}'


class TestFormatTurnsForSummary:
    def test_openai_turns(self):
        adapter = OpenAIAdapter()
        history = [
            openai_user("fix the bug"),
            openai_call("read_file", {"path": "src/bug.py"}),
            openai_output("def bug(): ..."),
            openai_assistant("Fixed it."),
            openai_user("thanks"),
            openai_call("edit_file", {"filePath": "src/other.py"}, call_id="call_2"),
        ]
        text = format_turns_for_summary(segment_into_turns(history, adapter), adapter)

        assert text.startswith("--- Turn 1 ---\nUSER: fix the bug\n")
        assert "[Tool Call: read_file]" in text
        assert "[Tool Result] def bug(): ..." in text
        assert "Fixed it." in text
        assert "--- Turn 2 ---\nUSER: thanks" in text
        assert "[Tools used: read_file, edit_file]" in text
        assert "[Files involved: src/bug.py, src/other.py]" in text

    def test_options_disable_trailers(self):
        adapter = AnthropicAdapter()
        turns = segment_into_turns(anthropic_history(2, body_chars=10), adapter)
        options = SummarizerOptions(include_tool_names=False, include_file_paths=False)

        text = format_turns_for_summary(turns, adapter, options)
        assert "[Tools used:" not in text
        assert "[Files involved:" not in text
        assert "--- Turn 2 ---" in text

    def test_user_text_clipped_and_summary_user_skipped(self):
        adapter = OpenAIAdapter()
        turns = [
            Turn(user_message=openai_user(SUMMARY_MARKER_PREFIX + "old")),
            Turn(user_message=openai_user("q" * 2000), assistant_and_tools=[openai_assistant("a")]),
        ]
        text = format_turns_for_summary(turns, adapter)

        assert "--- Turn 1 ---" not in text
        assert "USER: " + "q" * 500 + "\n" in text
        assert "q" * 501 not in text

    def test_empty(self):
        assert format_turns_for_summary([], OpenAIAdapter()) == ""
