"""API Package - FastAPI routes, middleware, and dependencies.

Components:
- routes: API endpoint routers (health, inference)
- middleware: Request logging middleware
- deps: FastAPI dependency injection functions

Note: Import routers directly from inference_router.api.routes to avoid circular imports.
"""

__all__ = ["routes", "middleware", "deps"]
