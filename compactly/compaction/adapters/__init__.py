"""Provider adapters for the supported history wire formats."""

from compactly.compaction.adapters.anthropic import AnthropicAdapter
from compactly.compaction.adapters.base import ItemKind, ProviderAdapter, TURN_BODY_KINDS
from compactly.compaction.adapters.openai import OpenAIAdapter

_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
}


def get_adapter(name: str) -> ProviderAdapter:
    """
    Get the adapter for a provider.

    Args:
        name: Provider name ("openai" or "anthropic").

    Returns:
        A new adapter instance.

    Raises:
        ValueError: If the provider is unknown.
    """
    try:
        return _ADAPTERS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown provider '{name}'. Expected one of: {', '.join(sorted(_ADAPTERS))}"
        ) from None


__all__ = [
    "AnthropicAdapter",
    "ItemKind",
    "OpenAIAdapter",
    "ProviderAdapter",
    "TURN_BODY_KINDS",
    "get_adapter",
]
