"""Inference Router - Source Package.

Note: Import `app` directly from `inference_router.main` to avoid circular imports.
"""

__all__ = ["main", "api", "core", "models", "resilience", "routing"]
