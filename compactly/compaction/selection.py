"""Choose which turns to summarize and which to keep intact."""

from compactly.compaction.adapters.base import ProviderAdapter
from compactly.compaction.types import (
    MIN_TURNS_TO_PRESERVE,
    CompactionConfig,
    CompactionTargets,
    Turn,
    is_summary_message,
)


def effective_preserve_count(config: CompactionConfig, turn_count: int) -> int:
    """
    Number of recent turns to keep for a history of ``turn_count`` turns.

    At least one turn is always kept and at least one is left to summarize,
    whatever ``preserve_last_turns`` says.
    """
    return max(MIN_TURNS_TO_PRESERVE, min(config.preserve_last_turns, turn_count - 1))


def select_targets(
    turns: list[Turn],
    config: CompactionConfig,
    adapter: ProviderAdapter,
    preserve_count: int | None = None,
) -> CompactionTargets:
    """
    Split turns into the oldest ones to summarize and the newest ones to keep.

    A leading legacy summary turn (a user message carrying the summary
    marker) is detached as ``existing_summary`` and excluded from selection.

    Args:
        turns: Segmented turns, oldest first.
        config: Compaction configuration.
        adapter: Provider adapter used to read the first user message.
        preserve_count: Overrides ``config.preserve_last_turns`` when given.

    Returns:
        CompactionTargets.
    """
    targets = CompactionTargets()
    if not turns:
        return targets

    working = turns
    first_text = adapter.extract_user_text(working[0].user_message)
    if is_summary_message(first_text):
        targets.existing_summary = working[0]
        working = working[1:]

    if not working:
        return targets

    wanted = config.preserve_last_turns if preserve_count is None else preserve_count
    keep = max(0, min(wanted, len(working)))
    split_index = len(working) - keep

    targets.to_summarize = working[:split_index]
    targets.to_preserve = working[split_index:]
    return targets
