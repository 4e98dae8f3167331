"""Turn segmentation and history reconstruction."""

from loguru import logger

from compactly.compaction.adapters.base import TURN_BODY_KINDS, ItemKind, ProviderAdapter
from compactly.compaction.estimator import estimate_turn_tokens
from compactly.compaction.types import ConversationItem, Turn


def segment_into_turns(
    history: list[ConversationItem],
    adapter: ProviderAdapter,
) -> list[Turn]:
    """
    Segment history into turns.

    A turn is one user message plus every assistant/tool item up to the next
    user message. Assistant/tool items that arrive before any user message are
    wrapped in a synthetic placeholder turn so nothing is orphaned. Items the
    adapter cannot classify are skipped once a turn is open.

    Args:
        history: Flat wire-format history.
        adapter: Provider adapter used to classify items.

    Returns:
        Turns in history order, each with ``estimated_tokens`` filled in.
    """
    turns: list[Turn] = []
    current: Turn | None = None

    counts = {
        "user": 0,
        "assistant": 0,
        "tool": 0,
        "orphans": 0,
        "unclassified": 0,
    }

    def close(turn: Turn) -> None:
        turn.estimated_tokens = estimate_turn_tokens(turn, adapter)
        turns.append(turn)

    for item in history:
        try:
            kind = adapter.classify(item)
        except Exception:
            kind = ItemKind.UNKNOWN

        if kind is ItemKind.USER_MESSAGE:
            counts["user"] += 1
            if current is not None:
                close(current)
            current = Turn(user_message=item)
        elif current is not None and kind in TURN_BODY_KINDS:
            if kind is ItemKind.ASSISTANT_MESSAGE:
                counts["assistant"] += 1
            else:
                counts["tool"] += 1
            current.assistant_and_tools.append(item)
        elif current is None:
            # Orphan before any user message
            counts["orphans"] += 1
            current = Turn(
                user_message=adapter.build_placeholder_user_message(),
                assistant_and_tools=[item],
            )
        else:
            counts["unclassified"] += 1
            logger.warning(
                f"Compaction ({adapter.name}): skipping unclassified item "
                f"role={_field(item, 'role')} type={_field(item, 'type')}"
            )

    if current is not None:
        close(current)

    logger.debug(
        f"Compaction ({adapter.name}) segmentation: items={len(history)} "
        f"user={counts['user']} assistant={counts['assistant']} tool={counts['tool']} "
        f"orphans={counts['orphans']} unclassified={counts['unclassified']} "
        f"turns={len(turns)}"
    )
    return turns


def _field(item: object, key: str) -> object:
    return item.get(key) if isinstance(item, dict) else type(item).__name__


def flatten_turns(turns: list[Turn]) -> list[ConversationItem]:
    """Flatten turns back into a history list, preserving turn order."""
    history: list[ConversationItem] = []
    for turn in turns:
        history.append(turn.user_message)
        history.extend(turn.assistant_and_tools)
    return history
