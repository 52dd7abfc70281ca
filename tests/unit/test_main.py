"""
Main Application Tests

This module tests FastAPI application setup, lifespan events and CORS.

Reference Documents:
- GUIDELINES: Sinha (FastAPI) pp. 89-91: Dependency injection, app setup
- Buelta pp. 92-93: REST statelessness, graceful shutdown
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from inference_router.core.config import Settings


# =============================================================================
# Application Setup
# =============================================================================


class TestFastAPIApplicationSetup:
    """Module-level app and factory."""

    def test_app_instantiates_without_error(self) -> None:
        from inference_router.main import app

        assert isinstance(app, FastAPI)

    def test_app_metadata(self) -> None:
        from inference_router.main import app

        assert app.title == "Inference Router"
        assert app.version == "1.0.0"

    def test_routes_registered(self) -> None:
        from inference_router.main import create_app

        paths = {route.path for route in create_app(Settings()).routes}

        assert {"/", "/health", "/health/ready", "/v1/inference", "/v1/inference/stream",
                "/v1/backends", "/v1/cache", "/metrics"} <= paths

    def test_docs_disabled_in_production(self) -> None:
        from inference_router.main import create_app

        app = create_app(Settings(environment="production"))

        assert app.docs_url is None
        assert app.redoc_url is None


class TestRootEndpoint:
    """GET /"""

    def test_root_returns_service_info(self, make_router) -> None:
        from inference_router.main import create_app

        router, _ = make_router()
        with TestClient(create_app(Settings(), fallback_router=router)) as client:
            data = client.get("/").json()

        assert data == {"service": "Inference Router", "version": "1.0.0", "docs": "/docs"}


# =============================================================================
# Lifespan
# =============================================================================


class TestLifespan:
    """Startup and shutdown."""

    def test_injected_router_started_and_closed(self, make_router) -> None:
        from inference_router.main import create_app

        router, fakes = make_router()
        app = create_app(Settings(), fallback_router=router)

        with TestClient(app):
            assert app.state.router is router
            assert app.state.settings.service_name == "inference-router"

        assert app.state.router is None
        assert all(adapter.closed for adapter in fakes.values())

    def test_router_built_from_settings(self) -> None:
        """Without an injected router, one is built at startup."""
        from inference_router.main import create_app
        from inference_router.routing.router import FallbackRouter

        app = create_app(Settings(environment="development", cache_enabled=False))

        with TestClient(app) as client:
            assert isinstance(app.state.router, FallbackRouter)
            response = client.post("/v1/inference", json={"prompt": "hello"})

        assert response.status_code == 200
        assert response.json()["chain"] == "chat_speed"


# =============================================================================
# CORS
# =============================================================================


class TestCorsOrigins:
    """get_cors_origins()"""

    def test_development_allows_all(self) -> None:
        from inference_router.main import get_cors_origins

        assert get_cors_origins(Settings(environment="development")) == ["*"]

    def test_production_uses_configured_origins(self) -> None:
        from inference_router.main import get_cors_origins

        settings = Settings(environment="production", cors_origins=["https://app.example.com"])

        assert get_cors_origins(settings) == ["https://app.example.com"]

    def test_production_default_is_empty(self) -> None:
        from inference_router.main import get_cors_origins

        assert get_cors_origins(Settings(environment="production")) == []


# =============================================================================
# Redis Client
# =============================================================================


class TestCreateRedisClient:
    """_create_redis_client()"""

    def test_none_without_url(self) -> None:
        from inference_router.main import _create_redis_client

        assert _create_redis_client(Settings(redis_url=None)) is None

    def test_none_when_cache_disabled(self) -> None:
        from inference_router.main import _create_redis_client

        settings = Settings(redis_url="redis://localhost:6379/0", cache_enabled=False)

        assert _create_redis_client(settings) is None

    def test_client_from_url(self) -> None:
        """Connections are lazy; building the client does not connect."""
        from redis.asyncio import Redis

        from inference_router.main import _create_redis_client

        client = _create_redis_client(Settings(redis_url="redis://localhost:6379/0"))

        assert isinstance(client, Redis)
