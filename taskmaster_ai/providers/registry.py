"""
Adapter Registry

Maps each ``ProviderId`` variant to its adapter implementation. Adapters are
created lazily on first use so a missing SDK only affects its own provider.
"""

from typing import Dict, List, Optional, Type

from taskmaster_ai.providers.base import BaseAdapter
from taskmaster_ai.providers.implementations import (
    AnthropicAdapter,
    AzureOpenAIAdapter,
    GoogleAdapter,
    MistralAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    PerplexityAdapter,
    XAIAdapter,
)
from taskmaster_ai.providers.interfaces import ProviderAdapter, ProviderId

ADAPTER_CLASSES: Dict[ProviderId, Type[BaseAdapter]] = {
    ProviderId.ANTHROPIC: AnthropicAdapter,
    ProviderId.OPENAI: OpenAIAdapter,
    ProviderId.GOOGLE: GoogleAdapter,
    ProviderId.PERPLEXITY: PerplexityAdapter,
    ProviderId.XAI: XAIAdapter,
    ProviderId.OPENROUTER: OpenRouterAdapter,
    ProviderId.OLLAMA: OllamaAdapter,
    ProviderId.MISTRAL: MistralAdapter,
    ProviderId.AZURE: AzureOpenAIAdapter,
}


class AdapterRegistry:
    """
    Registry of provider adapters keyed by ``ProviderId``.

    Thread-safe: Not thread-safe for registration. Lookups after startup
    only create adapters once per provider; a duplicate creation under a
    race is harmless because adapters hold no per-request state.

    Example:
        >>> registry = AdapterRegistry()
        >>> adapter = registry.get(ProviderId.ANTHROPIC)
        >>> result = await adapter.generate_text(binding, request, api_key=key)
    """

    def __init__(self, *, timeout_seconds: Optional[float] = None):
        """
        Initialize an empty registry.

        Args:
            timeout_seconds: HTTP timeout handed to lazily created adapters
        """
        self._adapters: Dict[ProviderId, ProviderAdapter] = {}
        self._timeout_seconds = timeout_seconds

    def register(self, provider_id: ProviderId, adapter: ProviderAdapter) -> None:
        """
        Register (or replace) the adapter for a provider.

        Args:
            provider_id: Provider variant
            adapter: Adapter implementation

        Raises:
            TypeError: If the provider id or adapter types are invalid
        """
        if not isinstance(provider_id, ProviderId):
            raise TypeError(
                f"provider_id must be a ProviderId, got {type(provider_id).__name__}"
            )

        required_attrs = ["generate_text", "generate_object", "stream_text"]
        if not all(hasattr(adapter, attr) for attr in required_attrs):
            raise TypeError("adapter must implement the ProviderAdapter protocol")

        self._adapters[provider_id] = adapter

    def unregister(self, provider_id: ProviderId) -> None:
        """Remove a registered adapter; a no-op when absent."""
        self._adapters.pop(provider_id, None)

    def get(self, provider_id: ProviderId) -> ProviderAdapter:
        """
        Get the adapter for a provider, creating the default one if needed.

        Raises:
            ImportError: If the provider's SDK is not installed
        """
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            adapter = ADAPTER_CLASSES[provider_id](timeout_seconds=self._timeout_seconds)
            self._adapters[provider_id] = adapter
        return adapter

    def has_adapter(self, provider_id: ProviderId) -> bool:
        """True if an adapter instance is already registered or created."""
        return provider_id in self._adapters

    def list_providers(self) -> List[str]:
        """Sorted list of every supported provider id."""
        return sorted(p.value for p in ADAPTER_CLASSES)


# Global registry singleton
_global_registry: Optional[AdapterRegistry] = None


def get_adapter_registry() -> AdapterRegistry:
    """
    Get the global adapter registry.

    Returns:
        Global AdapterRegistry instance
    """
    global _global_registry
    if _global_registry is None:
        _global_registry = AdapterRegistry()
    return _global_registry


__all__ = ["ADAPTER_CLASSES", "AdapterRegistry", "get_adapter_registry"]
