"""
API test fixtures.

Applications are built with create_app() and a FallbackRouter injected from
the make_router factory, then driven with FastAPI's TestClient so the
lifespan (router start/close) runs as in production.
"""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from inference_router.core.config import Settings
from inference_router.main import create_app


@pytest.fixture
def make_client(make_router):
    """
    Factory returning (client, router, fakes) for a started application.

    Usage:
        client, router, fakes = make_client(alpha=FakeBackendAdapter(...))
    """
    clients: list[TestClient] = []

    def _make(settings: Settings = None, **router_kwargs: Any):
        router, fakes = make_router(**router_kwargs)
        app = create_app(settings or Settings(environment="development"), fallback_router=router)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client, router, fakes

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
