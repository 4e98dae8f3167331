"""Compaction system for context management."""

from compactly.compaction.adapters import (
    AnthropicAdapter,
    ItemKind,
    OpenAIAdapter,
    ProviderAdapter,
    get_adapter,
)
from compactly.compaction.estimator import (
    estimate_history_metrics,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    estimate_value_tokens,
)
from compactly.compaction.orchestrator import (
    compact_history,
    compact_once,
    needs_compaction,
)
from compactly.compaction.segmentation import flatten_turns, segment_into_turns
from compactly.compaction.selection import select_targets
from compactly.compaction.service import CompactionService, resolve_config
from compactly.compaction.summarizer import (
    create_fallback_summarizer,
    create_llm_summarizer,
)
from compactly.compaction.types import (
    DEFAULT_ANTHROPIC_COMPACTION_CONFIG,
    DEFAULT_OPENAI_COMPACTION_CONFIG,
    MODELS,
    CompactionConfig,
    CompactionResult,
    CompactionTargets,
    ContextMetrics,
    SummarizerError,
    SummarizerOptions,
    Turn,
)

__all__ = [
    # Adapters
    "AnthropicAdapter",
    "ItemKind",
    "OpenAIAdapter",
    "ProviderAdapter",
    "get_adapter",
    # Estimator
    "estimate_tokens",
    "estimate_value_tokens",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "estimate_history_metrics",
    # Turns
    "segment_into_turns",
    "flatten_turns",
    "select_targets",
    # Orchestrator
    "compact_history",
    "compact_once",
    "needs_compaction",
    # Summarizer
    "create_llm_summarizer",
    "create_fallback_summarizer",
    # Service
    "CompactionService",
    "resolve_config",
    # Types
    "CompactionConfig",
    "CompactionResult",
    "CompactionTargets",
    "ContextMetrics",
    "SummarizerError",
    "SummarizerOptions",
    "Turn",
    "DEFAULT_OPENAI_COMPACTION_CONFIG",
    "DEFAULT_ANTHROPIC_COMPACTION_CONFIG",
    "MODELS",
]
