"""CLI commands for compactly."""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from compactly import __logo__, __version__

app = typer.Typer(
    name="compactly",
    help=f"{__logo__} compactly - Conversation context compaction",
    no_args_is_help=True,
)

console = Console()
# Status output for commands that write their result to stdout
err_console = Console(stderr=True)

STRATEGIES = ("per_turn", "rolling_summary", "adaptive")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} compactly v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """compactly - Conversation context compaction."""
    pass


def _load_history(path: Path) -> list[dict[str, Any]]:
    """Read a JSON history file: a list of items or {"history": [...]}."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read history from {path}: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(data, dict):
        data = data.get("history")
    if not isinstance(data, list):
        console.print("[red]History file must contain a JSON list of items[/red]")
        raise typer.Exit(1)
    return data


# ============================================================================
# Metrics
# ============================================================================


@app.command()
def metrics(
    file: Path = typer.Argument(..., help="JSON history file"),
    provider: str = typer.Option(None, "--provider", "-p", help="openai or anthropic"),
    model: str = typer.Option(None, "--model", "-m", help="Chat model for context sizing"),
):
    """Show estimated token usage per category."""
    from compactly.compaction import CompactionService, get_adapter
    from compactly.config.loader import load_config

    config = load_config()
    provider = provider or config.provider
    try:
        adapter = get_adapter(provider)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    history = _load_history(file)
    service = CompactionService(
        adapter, model=model, config=config.compaction_config(provider, model)
    )
    result = service.get_metrics(history)

    table = Table(title=f"Context usage ({adapter.name})")
    table.add_column("Category", style="cyan")
    table.add_column("Tokens", justify="right")

    for category, tokens in result.breakdown().items():
        table.add_row(category, f"{tokens:,}")
    table.add_row("[bold]total[/bold]", f"[bold]{result.total_tokens:,}[/bold]")

    console.print(table)

    max_tokens = service.config.max_context_tokens
    target = service.config.target_context_tokens
    console.print(
        f"[dim]Window {max_tokens:,} tokens, target {target:,} "
        f"({result.total_tokens / max(1, max_tokens):.1%} used)[/dim]"
    )
    if service.needs_compaction(history):
        console.print("[yellow]History is over the compaction target[/yellow]")


# ============================================================================
# Compact
# ============================================================================


@app.command()
def compact(
    file: Path = typer.Argument(..., help="JSON history file"),
    provider: str = typer.Option(None, "--provider", "-p", help="openai or anthropic"),
    strategy: str = typer.Option(
        None, "--strategy", "-s", help="per_turn, rolling_summary or adaptive"
    ),
    target: int = typer.Option(None, "--target", "-t", help="Target context tokens"),
    preserve: int = typer.Option(None, "--preserve", help="Recent turns to keep intact"),
    max_iterations: int = typer.Option(None, "--max-iterations", help="Passes per strategy"),
    model: str = typer.Option(None, "--model", "-m", help="Chat model for context sizing"),
    output: Path = typer.Option(None, "--output", "-o", help="Write result here (default: stdout)"),
    use_llm: bool = typer.Option(
        True, "--llm/--fallback", help="Summarize with an LLM or the built-in fallback"
    ),
):
    """Compact a JSON history file."""
    from compactly.compaction import CompactionService, get_adapter
    from compactly.compaction.types import SummarizerOptions
    from compactly.config.loader import load_config

    config = load_config()
    provider = provider or config.provider
    try:
        adapter = get_adapter(provider)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if strategy is not None and strategy not in STRATEGIES:
        console.print(f"[red]Unknown strategy '{strategy}'. Choose from: {', '.join(STRATEGIES)}[/red]")
        raise typer.Exit(1)

    if strategy is not None:
        config.compaction.strategy = strategy
    if target is not None:
        config.compaction.target_context_tokens = target
    if preserve is not None:
        config.compaction.preserve_last_turns = preserve
    if max_iterations is not None:
        config.compaction.max_iterations = max_iterations

    try:
        compaction_config = config.compaction_config(provider, model)
    except (TypeError, ValueError) as e:
        console.print(f"[red]Invalid compaction settings: {e}[/red]")
        raise typer.Exit(1)

    llm = None
    if use_llm:
        api_key = config.get_api_key()
        if not api_key:
            err_console.print("[yellow]No API key configured, using fallback summarizer[/yellow]")
        else:
            from compactly.providers.litellm_provider import LiteLLMProvider
            llm = LiteLLMProvider(
                api_key=api_key,
                api_base=config.get_api_base(),
                default_model=compaction_config.summary_model,
            )

    history = _load_history(file)
    service = CompactionService(
        adapter,
        provider=llm,
        model=model,
        config=compaction_config,
        summarizer_options=SummarizerOptions(
            max_summary_tokens=config.compaction.max_summary_tokens
        ),
    )

    result = asyncio.run(service.compact(history))

    payload = json.dumps(result.history, indent=2, ensure_ascii=False)
    if output:
        output.write_text(payload + "\n", encoding="utf-8")
    else:
        typer.echo(payload)

    if result.compacted:
        err_console.print(
            f"[green]✓[/green] Summarized {result.turns_summarized} turns: "
            f"{result.original_tokens:,} -> {result.new_tokens:,} tokens"
        )
    else:
        err_console.print(
            f"[dim]No compaction needed or possible ({result.original_tokens:,} tokens)[/dim]"
        )


if __name__ == "__main__":
    app()
