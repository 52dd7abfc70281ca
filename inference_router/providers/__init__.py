"""
Providers Package - Backend Adapters

The abstract adapter interface, an OpenAI-compatible HTTP adapter, a fake
adapter for tests and local development, and the backend-to-adapter registry.
"""

from inference_router.providers.base import BackendAdapter
from inference_router.providers.fake import FakeBackendAdapter
from inference_router.providers.http import OpenAICompatibleAdapter, create_http_client
from inference_router.providers.registry import AdapterRegistry, create_adapter_registry

__all__ = [
    "BackendAdapter",
    "FakeBackendAdapter",
    "OpenAICompatibleAdapter",
    "create_http_client",
    "AdapterRegistry",
    "create_adapter_registry",
]
