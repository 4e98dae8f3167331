"""Compaction strategies and bounded iterative passes over a history."""

from dataclasses import dataclass, replace

from loguru import logger

from compactly.compaction.adapters.base import ProviderAdapter
from compactly.compaction.estimator import (
    estimate_history_metrics,
    estimate_turn_tokens,
)
from compactly.compaction.segmentation import flatten_turns, segment_into_turns
from compactly.compaction.selection import effective_preserve_count, select_targets
from compactly.compaction.types import (
    BUILDING_ON_PREVIOUS_NOTE,
    BUILDING_ON_PREVIOUS_ROLLING_NOTE,
    MIN_TURNS_FOR_COMPACTION,
    ROLLING_SUMMARY_TAG,
    SUMMARY_MARKER_PREFIX,
    CompactionConfig,
    CompactionResult,
    ConversationItem,
    Summarizer,
    Turn,
    is_summary_message,
    strip_summary_marker,
)


@dataclass
class _IterationOutcome:
    history: list[ConversationItem]
    tokens: int
    turns_summarized: int
    summary_text: str | None


def _unchanged(history: list[ConversationItem], tokens: int) -> CompactionResult:
    return CompactionResult(
        history=history,
        compacted=False,
        turns_summarized=0,
        original_tokens=tokens,
        new_tokens=tokens,
    )


def _needs_work(config: CompactionConfig, tokens: int) -> bool:
    return config.enabled and tokens > config.target_context_tokens


def create_summary_message(
    summary_text: str,
    adapter: ProviderAdapter,
    existing_summary: str | None = None,
) -> ConversationItem:
    """Build the per-turn summary message that replaces a turn's assistant/tool items."""
    text = SUMMARY_MARKER_PREFIX
    if existing_summary:
        text += BUILDING_ON_PREVIOUS_NOTE
    text += summary_text
    return adapter.build_summary_message(text)


def create_rolling_summary_message(
    summary_text: str,
    adapter: ProviderAdapter,
    existing_summary: str | None = None,
) -> ConversationItem:
    """Build the single rolling summary message prepended to the history."""
    text = f"{SUMMARY_MARKER_PREFIX}{ROLLING_SUMMARY_TAG}\n\n"
    if existing_summary:
        text += BUILDING_ON_PREVIOUS_ROLLING_NOTE
    text += summary_text
    return adapter.build_summary_message(text)


def strip_leading_rolling_summary(
    history: list[ConversationItem],
    adapter: ProviderAdapter,
) -> tuple[list[ConversationItem], str | None]:
    """
    Detach a rolling summary message from the front of the history.

    Returns:
        Tuple of (remaining history, previous rolling summary text or None).
    """
    if not history:
        return history, None
    text = adapter.assistant_text(history[0])
    if text and text.startswith(SUMMARY_MARKER_PREFIX) and ROLLING_SUMMARY_TAG in text:
        cleaned = (
            text.replace(SUMMARY_MARKER_PREFIX, "", 1)
            .replace(ROLLING_SUMMARY_TAG, "", 1)
            .strip()
        )
        return history[1:], cleaned
    return history, None


async def compact_per_turn_once(
    history: list[ConversationItem],
    config: CompactionConfig,
    summarizer: Summarizer,
    adapter: ProviderAdapter,
) -> CompactionResult:
    """
    Run one per-turn pass.

    Each older turn keeps its user message verbatim; its assistant/tool items
    are replaced by a single summary message. A summarizer failure leaves
    that turn untouched and the sweep continues.
    """
    original_tokens = estimate_history_metrics(history, adapter).total_tokens
    if not _needs_work(config, original_tokens):
        return _unchanged(history, original_tokens)

    logger.info(
        f"Compaction ({adapter.name}) per-turn pass: {original_tokens} tokens, "
        f"target {config.target_context_tokens}"
    )

    turns = segment_into_turns(history, adapter)
    if len(turns) < MIN_TURNS_FOR_COMPACTION:
        logger.info(
            f"Compaction ({adapter.name}): not enough turns to compact "
            f"({len(turns)} < {MIN_TURNS_FOR_COMPACTION})"
        )
        return _unchanged(history, original_tokens)

    preserve = effective_preserve_count(config, len(turns))
    logger.debug(
        f"Compaction ({adapter.name}): preserve configured={config.preserve_last_turns} "
        f"effective={preserve} turns={len(turns)}"
    )
    for index, turn in enumerate(turns, start=1):
        logger.debug(
            f"Compaction ({adapter.name}) turn {index}: {turn.estimated_tokens} tokens, "
            f"{len(turn.assistant_and_tools)} assistant/tool items"
        )

    targets = select_targets(turns, config, adapter, preserve_count=preserve)
    if not targets.to_summarize:
        logger.info(f"Compaction ({adapter.name}): no turns to summarize")
        return _unchanged(history, original_tokens)

    new_turns: list[Turn] = []
    if targets.existing_summary is not None:
        new_turns.append(targets.existing_summary)

    turns_summarized = 0
    for turn in targets.to_summarize:
        if not turn.assistant_and_tools:
            new_turns.append(turn)
            continue

        existing_summary_text: str | None = None
        unsummarized: list[ConversationItem] = []
        for item in turn.assistant_and_tools:
            text = adapter.extract_text(item)
            if existing_summary_text is None and text and is_summary_message(text):
                existing_summary_text = strip_summary_marker(text)
                continue
            unsummarized.append(item)

        if not unsummarized:
            new_turns.append(turn)
            continue

        turn_for_summary = Turn(
            user_message=turn.user_message,
            assistant_and_tools=unsummarized,
            estimated_tokens=turn.estimated_tokens,
        )

        try:
            summary_text = await summarizer([turn_for_summary], existing_summary_text)
        except Exception as e:
            logger.warning(
                f"Compaction ({adapter.name}): summarization failed for turn, keeping original: {e}"
            )
            new_turns.append(turn)
            continue

        summarized = Turn(
            user_message=turn.user_message,
            assistant_and_tools=[
                create_summary_message(summary_text, adapter, existing_summary_text)
            ],
        )
        summarized.estimated_tokens = estimate_turn_tokens(summarized, adapter)
        new_turns.append(summarized)
        turns_summarized += 1

    new_turns.extend(targets.to_preserve)

    if turns_summarized == 0:
        return _unchanged(history, original_tokens)

    new_history = flatten_turns(new_turns)
    new_tokens = estimate_history_metrics(new_history, adapter).total_tokens

    logger.info(
        f"Compaction ({adapter.name}) per-turn pass complete: {turns_summarized} turns, "
        f"{original_tokens} -> {new_tokens} tokens"
    )
    return CompactionResult(
        history=new_history,
        compacted=True,
        turns_summarized=turns_summarized,
        original_tokens=original_tokens,
        new_tokens=new_tokens,
    )


async def compact_rolling_once(
    history: list[ConversationItem],
    config: CompactionConfig,
    summarizer: Summarizer,
    adapter: ProviderAdapter,
) -> CompactionResult:
    """
    Run one rolling-summary pass.

    All older turns' assistant/tool content is folded into one summary
    message at the front of the history; their user messages are kept. The
    rewrite is only accepted if it is strictly smaller than the input.
    """
    original_tokens = estimate_history_metrics(history, adapter).total_tokens
    if not _needs_work(config, original_tokens):
        return _unchanged(history, original_tokens)

    stripped, existing_text = strip_leading_rolling_summary(history, adapter)
    turns = segment_into_turns(stripped, adapter)
    if len(turns) < MIN_TURNS_FOR_COMPACTION:
        return _unchanged(history, original_tokens)

    preserve = effective_preserve_count(config, len(turns))
    split_index = max(0, len(turns) - preserve)
    to_summarize = turns[:split_index]
    to_preserve = turns[split_index:]

    if not any(turn.assistant_and_tools for turn in to_summarize):
        return _unchanged(history, original_tokens)

    try:
        summary_text = await summarizer(to_summarize, existing_text)
    except Exception as e:
        logger.error(
            f"Compaction ({adapter.name}): rolling summary failed, keeping original history: {e}"
        )
        return _unchanged(history, original_tokens)

    new_history: list[ConversationItem] = [
        create_rolling_summary_message(summary_text, adapter, existing_text)
    ]
    new_history.extend(turn.user_message for turn in to_summarize)
    new_history.extend(flatten_turns(to_preserve))

    new_tokens = estimate_history_metrics(new_history, adapter).total_tokens
    if new_tokens >= original_tokens:
        logger.info(
            f"Compaction ({adapter.name}): rolling summary did not shrink history "
            f"({original_tokens} -> {new_tokens}), discarding"
        )
        return _unchanged(history, original_tokens)

    logger.info(
        f"Compaction ({adapter.name}) rolling pass complete: {len(to_summarize)} turns, "
        f"{original_tokens} -> {new_tokens} tokens"
    )
    return CompactionResult(
        history=new_history,
        compacted=True,
        turns_summarized=len(to_summarize),
        original_tokens=original_tokens,
        new_tokens=new_tokens,
        summary_text=summary_text,
    )


async def compact_once(
    history: list[ConversationItem],
    config: CompactionConfig,
    summarizer: Summarizer,
    adapter: ProviderAdapter,
) -> CompactionResult:
    """Run a single pass of the configured strategy (adaptive runs as per-turn)."""
    if config.strategy == "rolling_summary":
        return await compact_rolling_once(history, config, summarizer, adapter)
    return await compact_per_turn_once(history, config, summarizer, adapter)


async def _run_iterative(
    start: list[ConversationItem],
    config: CompactionConfig,
    summarizer: Summarizer,
    adapter: ProviderAdapter,
) -> _IterationOutcome:
    current = start
    current_tokens = estimate_history_metrics(current, adapter).total_tokens
    total_summarized = 0
    last_summary: str | None = None
    max_iterations = max(1, int(config.max_iterations or 1))

    for iteration in range(max_iterations):
        if current_tokens <= config.target_context_tokens:
            break
        result = await compact_once(current, config, summarizer, adapter)
        if not result.compacted or result.new_tokens >= current_tokens:
            logger.debug(
                f"Compaction ({adapter.name}): stopping after {iteration} pass(es), no progress"
            )
            break
        current = result.history
        current_tokens = result.new_tokens
        total_summarized += result.turns_summarized
        if result.summary_text:
            last_summary = result.summary_text

    return _IterationOutcome(
        history=current,
        tokens=current_tokens,
        turns_summarized=total_summarized,
        summary_text=last_summary,
    )


async def compact_history(
    history: list[ConversationItem],
    config: CompactionConfig,
    summarizer: Summarizer,
    adapter: ProviderAdapter,
) -> CompactionResult:
    """
    Compact a history toward ``config.target_context_tokens``.

    Runs bounded passes of the configured strategy. ``adaptive`` tries
    per-turn first and falls back to a single rolling pass only when
    per-turn alone cannot reach the target, keeping whichever result is
    smaller (per-turn wins ties).

    Args:
        history: Wire-format history. Never mutated.
        config: Compaction configuration.
        summarizer: Coroutine producing summary text for a list of turns.
        adapter: Provider adapter for the history format.

    Returns:
        CompactionResult. When ``compacted`` is False, ``history`` is the
        input list itself.
    """
    original_tokens = estimate_history_metrics(history, adapter).total_tokens
    if not _needs_work(config, original_tokens):
        return _unchanged(history, original_tokens)

    if config.strategy == "adaptive":
        per_turn = await _run_iterative(
            history, replace(config, strategy="per_turn"), summarizer, adapter
        )
        if per_turn.tokens <= config.target_context_tokens:
            return CompactionResult(
                history=per_turn.history,
                compacted=per_turn.history is not history,
                turns_summarized=per_turn.turns_summarized,
                original_tokens=original_tokens,
                new_tokens=per_turn.tokens,
                summary_text=per_turn.summary_text,
            )

        rolling = await _run_iterative(
            per_turn.history,
            replace(config, strategy="rolling_summary", max_iterations=1),
            summarizer,
            adapter,
        )
        best = rolling if rolling.tokens < per_turn.tokens else per_turn
        turns_summarized = per_turn.turns_summarized
        if best is rolling:
            turns_summarized += rolling.turns_summarized

        return CompactionResult(
            history=best.history,
            compacted=best.history is not history,
            turns_summarized=turns_summarized,
            original_tokens=original_tokens,
            new_tokens=best.tokens,
            summary_text=best.summary_text or per_turn.summary_text,
        )

    outcome = await _run_iterative(history, config, summarizer, adapter)
    return CompactionResult(
        history=outcome.history,
        compacted=outcome.history is not history,
        turns_summarized=outcome.turns_summarized,
        original_tokens=original_tokens,
        new_tokens=outcome.tokens,
        summary_text=outcome.summary_text,
    )


def needs_compaction(
    history: list[ConversationItem],
    config: CompactionConfig,
    adapter: ProviderAdapter,
) -> bool:
    """Check if a history is over the compaction target."""
    if not config.enabled:
        return False
    return estimate_history_metrics(history, adapter).total_tokens > config.target_context_tokens
