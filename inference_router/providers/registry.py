"""
Adapter Registry

Maps backends to the adapters that can call them. The router never branches
on provider names; it asks the registry for an adapter and gets either one or
UnknownBackendError.

Resolution order:
1. An adapter registered for the exact (provider, model) pair
2. An adapter registered for the provider as a whole
"""

import logging
from typing import Iterable, Optional

from inference_router.core.config import Settings
from inference_router.core.exceptions import UnknownBackendError
from inference_router.models.domain import BackendId
from inference_router.providers.base import BackendAdapter
from inference_router.providers.fake import FakeBackendAdapter
from inference_router.providers.http import OpenAICompatibleAdapter
from inference_router.services.pricing import PricingTable

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Backend-to-adapter lookup.

    Example:
        >>> registry = AdapterRegistry()
        >>> registry.register(groq_adapter, provider="groq")
        >>> registry.resolve(BackendId(provider="groq", model="llama-3.1-8b-instant"))
    """

    def __init__(self) -> None:
        self._by_backend: dict[BackendId, BackendAdapter] = {}
        self._by_provider: dict[str, BackendAdapter] = {}

    def register(
        self,
        adapter: BackendAdapter,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        """
        Register an adapter for a provider, or for one provider model.

        Args:
            adapter: The adapter
            provider: Provider name (defaults to adapter.provider)
            model: Restrict the registration to this model
        """
        provider_name = provider or adapter.provider
        if model is None:
            self._by_provider[provider_name] = adapter
        else:
            self._by_backend[BackendId(provider=provider_name, model=model)] = adapter

    def resolve(self, backend: BackendId) -> BackendAdapter:
        """
        Find the adapter for a backend.

        Raises:
            UnknownBackendError: Nothing is registered for the backend
        """
        adapter = self._by_backend.get(backend) or self._by_provider.get(backend.provider)
        if adapter is None:
            raise UnknownBackendError(backend)
        return adapter

    def providers(self) -> list[str]:
        """Provider names with at least one registration."""
        names = set(self._by_provider) | {b.provider for b in self._by_backend}
        return sorted(names)

    async def aclose(self) -> None:
        """Close every distinct registered adapter."""
        adapters = {id(a): a for a in [*self._by_provider.values(), *self._by_backend.values()]}
        for adapter in adapters.values():
            await adapter.aclose()


def create_adapter_registry(
    settings: Settings,
    chain_providers: Iterable[str] = (),
    pricing: Optional[PricingTable] = None,
) -> AdapterRegistry:
    """
    Build the adapter registry from settings.

    Each provider in provider_base_urls gets an OpenAICompatibleAdapter.
    In development, providers named by the chains but not configured get a
    FakeBackendAdapter so the service runs without credentials.

    Args:
        settings: Application settings
        chain_providers: Provider names referenced by the fallback chains
        pricing: Price table shared by the adapters
    """
    registry = AdapterRegistry()
    pricing = pricing or PricingTable()

    for provider, base_url in settings.provider_base_urls.items():
        api_key = settings.provider_api_keys.get(provider)
        registry.register(
            OpenAICompatibleAdapter(
                provider=provider,
                base_url=base_url,
                api_key=api_key.get_secret_value() if api_key else None,
                timeout_seconds=settings.backend_timeout_seconds,
                pricing=pricing,
            )
        )
        logger.info(f"Registered HTTP adapter for {provider} at {base_url}")

    if settings.environment == "development":
        for provider in sorted(set(chain_providers) - set(settings.provider_base_urls)):
            registry.register(FakeBackendAdapter(provider=provider, pricing=pricing))
            logger.info(f"Registered fake adapter for {provider} (development)")

    return registry
