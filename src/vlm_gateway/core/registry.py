"""
Provider registry: adapter lookup plus the lazily filled capability cache.
"""

import logging
from typing import Dict, List

from ..models.capabilities import ProviderCapabilities
from .errors import ProviderNotFoundError
from .interface import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of provider adapters.

    Registration order is preserved and is the order in which providers
    are tried during capability-based discovery. Provider capabilities
    are cached on first access and kept for the registry's lifetime.
    """

    def __init__(self):
        """Initialize the registry."""
        self._adapters: Dict[str, ProviderAdapter] = {}
        self._capability_cache: Dict[str, ProviderCapabilities] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """
        Register a provider adapter, replacing any with the same id.

        Args:
            adapter: Adapter instance to register
        """
        self._adapters[adapter.id] = adapter
        self._capability_cache.pop(adapter.id, None)
        logger.info(f"Registered provider adapter: {adapter.id}")

    def unregister(self, provider_id: str) -> None:
        self._adapters.pop(provider_id, None)
        self._capability_cache.pop(provider_id, None)

    def get(self, provider_id: str) -> ProviderAdapter:
        """
        Get an adapter by provider id.

        Raises:
            ProviderNotFoundError: If no adapter is registered under that id
        """
        if provider_id not in self._adapters:
            raise ProviderNotFoundError(provider_id)
        return self._adapters[provider_id]

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._adapters

    def list_providers(self) -> List[str]:
        return list(self._adapters)

    def list_configured(self) -> List[str]:
        """Ids of adapters holding a credential, in registration order."""
        return [pid for pid, adapter in self._adapters.items() if adapter.is_configured()]

    def get_capabilities(self, provider_id: str) -> ProviderCapabilities:
        """Provider capabilities, cached after the first lookup."""
        cached = self._capability_cache.get(provider_id)
        if cached is not None:
            return cached

        capabilities = self.get(provider_id).get_capabilities()
        self._capability_cache[provider_id] = capabilities
        return capabilities

    async def close_all(self) -> None:
        """Close every adapter's HTTP client."""
        for adapter in self._adapters.values():
            try:
                await adapter.aclose()
            except Exception as e:
                logger.error(f"Failed to close provider {adapter.id}: {e}")
