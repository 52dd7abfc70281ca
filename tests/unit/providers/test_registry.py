"""
Tests for AdapterRegistry and create_adapter_registry().
"""

from unittest.mock import AsyncMock

import pytest

from inference_router.core.config import Settings
from inference_router.core.exceptions import UnknownBackendError
from inference_router.models.domain import BackendId
from inference_router.providers.fake import FakeBackendAdapter


GROQ_8B = BackendId(provider="groq", model="llama-3.1-8b-instant")
GROQ_70B = BackendId(provider="groq", model="llama-3.1-70b-versatile")


class TestAdapterRegistry:
    """Resolution order and lifecycle."""

    def test_provider_registration_covers_all_models(self) -> None:
        from inference_router.providers.registry import AdapterRegistry

        registry = AdapterRegistry()
        adapter = FakeBackendAdapter(provider="groq")
        registry.register(adapter)

        assert registry.resolve(GROQ_8B) is adapter
        assert registry.resolve(GROQ_70B) is adapter

    def test_exact_registration_wins(self) -> None:
        """A (provider, model) registration beats the provider-wide one."""
        from inference_router.providers.registry import AdapterRegistry

        registry = AdapterRegistry()
        general = FakeBackendAdapter(provider="groq")
        special = FakeBackendAdapter(provider="groq")
        registry.register(general)
        registry.register(special, model=GROQ_70B.model)

        assert registry.resolve(GROQ_70B) is special
        assert registry.resolve(GROQ_8B) is general

    def test_unknown_backend(self) -> None:
        from inference_router.providers.registry import AdapterRegistry

        with pytest.raises(UnknownBackendError) as exc_info:
            AdapterRegistry().resolve(GROQ_8B)
        assert exc_info.value.backend == GROQ_8B

    def test_providers_listed(self) -> None:
        from inference_router.providers.registry import AdapterRegistry

        registry = AdapterRegistry()
        registry.register(FakeBackendAdapter(provider="openai"))
        registry.register(FakeBackendAdapter(provider="groq"), model="x")

        assert registry.providers() == ["groq", "openai"]

    @pytest.mark.asyncio
    async def test_aclose_closes_each_adapter_once(self) -> None:
        from inference_router.providers.registry import AdapterRegistry

        registry = AdapterRegistry()
        adapter = FakeBackendAdapter(provider="groq")
        adapter.aclose = AsyncMock()
        registry.register(adapter)
        registry.register(adapter, model="x")

        await registry.aclose()

        adapter.aclose.assert_awaited_once()


class TestCreateAdapterRegistry:
    """Building adapters from settings."""

    def test_configured_providers_get_http_adapters(self) -> None:
        from inference_router.providers.http import OpenAICompatibleAdapter
        from inference_router.providers.registry import create_adapter_registry

        settings = Settings(
            environment="production",
            provider_base_urls={"groq": "https://api.groq.com/openai/v1"},
            provider_api_keys={"groq": "gsk-test"},
        )

        registry = create_adapter_registry(settings, chain_providers=["groq", "gemini"])

        assert isinstance(registry.resolve(GROQ_8B), OpenAICompatibleAdapter)
        with pytest.raises(UnknownBackendError):
            registry.resolve(BackendId(provider="gemini", model="gemini-1.5-flash"))

    def test_development_fills_gaps_with_fakes(self) -> None:
        from inference_router.providers.registry import create_adapter_registry

        settings = Settings(environment="development")

        registry = create_adapter_registry(settings, chain_providers=["groq", "gemini"])

        assert isinstance(registry.resolve(GROQ_8B), FakeBackendAdapter)
        assert registry.providers() == ["gemini", "groq"]
