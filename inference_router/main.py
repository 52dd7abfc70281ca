"""
Inference Router - Main Application Entry Point

This module provides the FastAPI application for the Inference Router
service: one HTTP entry point that routes inference requests across ordered
fallback chains of LLM backends, with per-backend rate limiting, circuit
breaking and a shared response cache.

Run with:
    uvicorn inference_router.main:app --port 8080
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from inference_router.api.middleware.logging import RequestLoggingMiddleware
from inference_router.api.routes.health import router as health_router
from inference_router.api.routes.inference import router as inference_router
from inference_router.core.config import Settings, get_settings
from inference_router.observability.logging import configure_logging, get_logger
from inference_router.observability.metrics import MetricsMiddleware, get_metrics_app
from inference_router.routing.router import FallbackRouter, create_fallback_router

# Application metadata
APP_NAME = "Inference Router"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Fallback routing across LLM inference backends"

logger = get_logger(__name__)


def get_cors_origins(settings: Settings) -> list[str]:
    """
    CORS allowed origins for the environment.

    - Development: Allow all origins (["*"])
    - Staging/Production: INFERENCE_ROUTER_CORS_ORIGINS (JSON list), empty by default
    """
    if settings.environment == "development":
        return ["*"]
    return list(settings.cors_origins)


def _create_redis_client(settings: Settings) -> Optional[Redis]:
    if not settings.cache_enabled or not settings.redis_url:
        return None
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    fallback_router: Optional[FallbackRouter] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (default: from the environment)
        fallback_router: Prebuilt router; tests inject one wired to fake
            adapters. When omitted, the router is built from settings at
            startup and closed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # =====================================================================
        # STARTUP
        # =====================================================================
        configure_logging(settings.log_level)
        logger.info(
            "starting",
            service=settings.service_name,
            version=APP_VERSION,
            environment=settings.environment,
        )

        redis_client = None
        router = fallback_router
        if router is None:
            redis_client = _create_redis_client(settings)
            router = create_fallback_router(settings, redis_client)
        router.start()

        app.state.settings = settings
        app.state.router = router

        yield

        # =====================================================================
        # SHUTDOWN
        # =====================================================================
        logger.info("shutting down", service=settings.service_name)
        await router.aclose()
        if redis_client is not None:
            await redis_client.aclose()
        app.state.router = None

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)

    app.include_router(health_router)
    app.include_router(inference_router)
    app.mount("/metrics", get_metrics_app())

    @app.get("/", tags=["Info"])
    async def root() -> dict[str, Any]:
        """Root endpoint returning basic service information."""
        return {
            "service": APP_NAME,
            "version": APP_VERSION,
            "docs": "/docs" if settings.environment != "production" else "disabled",
        }

    return app


app = create_app()
