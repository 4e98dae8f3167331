"""Tests for the command line interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from compactly import __version__
from compactly.cli import commands
from compactly.config.schema import Config
from compactly.compaction.types import ROLLING_SUMMARY_TAG
from history_builders import anthropic_history, openai_history

runner = CliRunner()


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Never read the user's real config file."""
    monkeypatch.setattr("compactly.config.loader.load_config", lambda path=None: Config())


def _write(tmp_path: Path, history, name: str = "history.json") -> Path:
    path = tmp_path / name
    path.write_text(json.dumps(history))
    return path


class TestVersion:
    def test_version(self):
        result = runner.invoke(commands.app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestMetrics:
    def test_table(self, tmp_path: Path):
        path = _write(tmp_path, anthropic_history(2))
        result = runner.invoke(commands.app, ["metrics", str(path), "--provider", "anthropic"])

        assert result.exit_code == 0
        assert "tool_results" in result.output
        assert "total" in result.output

    def test_wrapped_history(self, tmp_path: Path):
        path = _write(tmp_path, {"history": openai_history(1)})
        result = runner.invoke(commands.app, ["metrics", str(path), "-p", "openai"])
        assert result.exit_code == 0

    def test_unknown_provider(self, tmp_path: Path):
        path = _write(tmp_path, openai_history(1))
        result = runner.invoke(commands.app, ["metrics", str(path), "--provider", "gemini"])
        assert result.exit_code == 1

    def test_bad_file(self, tmp_path: Path):
        path = tmp_path / "broken.json"
        path.write_text("{nope")
        result = runner.invoke(commands.app, ["metrics", str(path)])
        assert result.exit_code == 1


class TestCompact:
    def test_rolling_with_fallback_summarizer(self, tmp_path: Path):
        path = _write(tmp_path, openai_history(6))
        output = tmp_path / "out.json"

        result = runner.invoke(commands.app, [
            "compact", str(path),
            "--provider", "openai",
            "--strategy", "rolling_summary",
            "--target", "500",
            "--preserve", "1",
            "--fallback",
            "--output", str(output),
        ])

        assert result.exit_code == 0, result.output
        compacted = json.loads(output.read_text())
        assert ROLLING_SUMMARY_TAG in compacted[0]["content"][0]["text"]
        assert len(compacted) < 12

    def test_under_target_writes_history_unchanged(self, tmp_path: Path):
        history = openai_history(2)
        path = _write(tmp_path, history)
        output = tmp_path / "out.json"

        result = runner.invoke(commands.app, [
            "compact", str(path), "-p", "openai", "--fallback", "-o", str(output),
        ])

        assert result.exit_code == 0
        assert json.loads(output.read_text()) == history

    def test_unknown_strategy(self, tmp_path: Path):
        path = _write(tmp_path, openai_history(2))
        result = runner.invoke(commands.app, [
            "compact", str(path), "-p", "openai", "--strategy", "squash",
        ])
        assert result.exit_code == 1
