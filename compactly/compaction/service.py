"""Compaction service for managing context compression."""

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from compactly.compaction.adapters.base import ProviderAdapter
from compactly.compaction.estimator import estimate_history_metrics
from compactly.compaction.orchestrator import compact_history
from compactly.compaction.summarizer import (
    create_fallback_summarizer,
    create_llm_summarizer,
)
from compactly.compaction.types import (
    DEFAULT_COMPACTION_CONFIGS,
    MODELS,
    CompactionConfig,
    CompactionResult,
    ContextMetrics,
    ConversationItem,
    Summarizer,
    SummarizerOptions,
)

if TYPE_CHECKING:
    from compactly.providers.base import LLMProvider

# Receives structured events such as {"type": "compaction", ...}
EventSink = Callable[[dict[str, Any]], None]


def resolve_config(
    provider: str,
    model: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> CompactionConfig:
    """
    Build the effective compaction config for a provider and chat model.

    Starts from the provider preset, applies the model's context window and
    compaction target when the model is known, then explicit overrides.

    Args:
        provider: "openai" or "anthropic".
        model: Chat model name, looked up in the model registry.
        overrides: Field values that take precedence over everything else.

    Returns:
        A new CompactionConfig.
    """
    base = DEFAULT_COMPACTION_CONFIGS.get(provider)
    if base is None:
        raise ValueError(f"Unknown provider '{provider}'")

    info = MODELS.get(model) if model else None
    if info is not None:
        if info.context_window_tokens:
            base = replace(base, max_context_tokens=max(1, int(info.context_window_tokens)))
        if info.compaction_target_tokens:
            base = replace(base, target_context_tokens=max(1, int(info.compaction_target_tokens)))

    if overrides:
        base = replace(base, **{k: v for k, v in overrides.items() if v is not None})
    return base


class CompactionService:
    """
    Service for managing context compaction of one provider's histories.

    Handles:
    - Model-aware configuration
    - Context metrics logging and events
    - Compaction with an LLM summarizer, falling back to a non-LLM one
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        provider: "LLMProvider | None" = None,
        model: str | None = None,
        config: CompactionConfig | None = None,
        on_event: EventSink | None = None,
        summarizer_options: SummarizerOptions | None = None,
    ):
        """
        Initialize the compaction service.

        Args:
            adapter: Provider adapter for the history format.
            provider: LLM provider for summarization. Without one only the
                fallback summarizer is used.
            model: Chat model whose context sizing drives the config.
            config: Explicit config; resolved from the preset when omitted.
            on_event: Optional sink for structured monitoring events.
            summarizer_options: Options for rendering turns to the LLM.
        """
        self.adapter = adapter
        self.provider = provider
        self.model = model
        self.config = config or resolve_config(adapter.name, model)
        self.on_event = on_event
        self.summarizer_options = summarizer_options or SummarizerOptions()
        self._compaction_count = 0

    def should_compact(self, total_tokens: int) -> bool:
        """
        Check if compaction should be triggered.

        Args:
            total_tokens: Current total tokens in context.

        Returns:
            True if compaction is needed.
        """
        return self.config.enabled and total_tokens > self.config.target_context_tokens

    def get_metrics(self, history: list[ConversationItem]) -> ContextMetrics:
        """Get per-category token metrics for a history."""
        return estimate_history_metrics(history, self.adapter)

    def needs_compaction(self, history: list[ConversationItem]) -> bool:
        """Check if a history is over the compaction target."""
        if not self.config.enabled:
            return False
        return self.should_compact(self.get_metrics(history).total_tokens)

    def log_context_metrics(
        self,
        history: list[ConversationItem],
        iteration: int = 0,
        phase: str = "",
    ) -> None:
        """Log current context usage and emit a ``context_metrics`` event."""
        try:
            metrics = self.get_metrics(history)
            max_tokens = max(1, self.config.max_context_tokens)
            usage_percent = round(metrics.total_tokens / max_tokens * 100, 1)
            threshold_percent = round(self.config.target_context_tokens / max_tokens * 100)

            logger.info(
                f"Context iteration={iteration} phase={phase} provider={self.adapter.name} "
                f"tokens={metrics.total_tokens:,}/{max_tokens:,} ({usage_percent}%) "
                f"threshold={threshold_percent}% items={len(history)} "
                f"[user={metrics.user_message_tokens:,} assistant={metrics.assistant_tokens:,} "
                f"tool_calls={metrics.tool_call_tokens:,} tool_results={metrics.tool_result_tokens:,} "
                f"reasoning={metrics.reasoning_tokens:,}]"
            )
            self._emit({
                "type": "context_metrics",
                "provider": self.adapter.name,
                "iteration": iteration,
                "phase": phase,
                "metrics": {
                    "total_tokens": metrics.total_tokens,
                    "max_tokens": self.config.max_context_tokens,
                    "target_tokens": self.config.target_context_tokens,
                    "usage_percent": usage_percent,
                    "history_items": len(history),
                    "breakdown": metrics.breakdown(),
                },
            })
        except Exception as e:
            logger.warning(f"Failed to log context metrics: {e}")

    def primary_summarizer(self) -> Summarizer:
        """The LLM summarizer when a provider is configured, else the fallback."""
        if self.provider is None:
            return create_fallback_summarizer(self.adapter)
        return create_llm_summarizer(
            self.provider,
            self.config.summary_model,
            self.adapter,
            self.summarizer_options,
        )

    async def compact(
        self,
        history: list[ConversationItem],
        summarizer: Summarizer | None = None,
    ) -> CompactionResult:
        """
        Compact a history with the configured strategy.

        Args:
            history: History to compact.
            summarizer: Overrides the primary summarizer.

        Returns:
            CompactionResult.
        """
        result = await compact_history(
            history,
            self.config,
            summarizer or self.primary_summarizer(),
            self.adapter,
        )
        if result.compacted:
            self._compaction_count += 1
        return result

    async def maybe_compact(
        self,
        history: list[ConversationItem],
        auto_compaction: bool = True,
    ) -> list[ConversationItem]:
        """
        Compact history if it exceeds the target.

        Never raises: if the primary run fails it is retried once with the
        fallback summarizer, and if that fails too the original history is
        returned.

        Args:
            history: Current history.
            auto_compaction: When False the history is returned untouched.

        Returns:
            The (possibly compacted) history.
        """
        if not auto_compaction or not self.needs_compaction(history):
            return history

        logger.info(f"Context compaction triggered ({self.adapter.name})")

        using_fallback = self.provider is None
        try:
            return await self._attempt(history, self.primary_summarizer(), using_fallback)
        except Exception as e:
            logger.error(f"Compaction failed, retrying with fallback summarizer: {e}")

        if not using_fallback:
            try:
                return await self._attempt(
                    history, create_fallback_summarizer(self.adapter), True
                )
            except Exception as e:
                logger.error(f"Fallback compaction failed, continuing with original history: {e}")
        return history

    async def _attempt(
        self,
        history: list[ConversationItem],
        summarizer: Summarizer,
        is_fallback: bool,
    ) -> list[ConversationItem]:
        result = await self.compact(history, summarizer)
        if not result.compacted:
            return history

        logger.info(
            f"Compaction complete ({'fallback' if is_fallback else 'primary'}): "
            f"{result.turns_summarized} turns summarized, "
            f"{result.original_tokens} -> {result.new_tokens} tokens"
        )
        self._emit({
            "type": "compaction",
            "provider": self.adapter.name,
            "turns_summarized": result.turns_summarized,
            "original_tokens": result.original_tokens,
            "new_tokens": result.new_tokens,
            "fallback": is_fallback,
        })
        return result.history

    def _emit(self, event: dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception as e:
            logger.warning(f"Compaction event sink failed: {e}")

    @property
    def compaction_count(self) -> int:
        """Get the number of compactions performed."""
        return self._compaction_count
