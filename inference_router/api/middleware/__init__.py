"""
API Middleware Package

Middleware Components:
- logging: Request/response logging with correlation IDs and header redaction
"""

from inference_router.api.middleware.logging import (
    RequestLoggingMiddleware,
    redact_sensitive_headers,
)

__all__ = [
    "RequestLoggingMiddleware",
    "redact_sensitive_headers",
]
