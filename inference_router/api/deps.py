"""
API Dependencies

FastAPI dependency functions for the API layer. Every dependency can be
replaced in tests through app.dependency_overrides.

Reference:
- Sinha pp. 89-91: Dependency injection patterns
"""

from fastapi import HTTPException, Request

from inference_router.core.config import Settings, get_settings as _get_settings
from inference_router.routing.router import FallbackRouter


def get_settings() -> Settings:
    """
    Get application settings.

    Pattern: Singleton with @lru_cache (from core.config)
    """
    return _get_settings()


def get_router(request: Request) -> FallbackRouter:
    """
    Get the FallbackRouter built during application startup.

    Raises:
        HTTPException 503: The application has not finished starting
    """
    router = getattr(request.app.state, "router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Router not initialized")
    return router


__all__ = ["get_settings", "get_router"]
