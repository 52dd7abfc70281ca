"""
Core module for the Inference Router.

This module contains configuration and the exception hierarchy.
"""

from inference_router.core.config import Settings, get_settings
from inference_router.core.exceptions import (
    AllBackendsExhaustedError,
    BackendAuthError,
    BackendError,
    BackendRateLimitError,
    BackendStreamInterruptedError,
    BackendTransientError,
    CacheUnavailableError,
    CircuitOpenError,
    DailyQuotaExceededError,
    ErrorCode,
    InferenceRouterError,
    RateLimitExceededError,
    RateLimitResetError,
    RateLimitTimeoutError,
    UnknownBackendError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Exceptions
    "ErrorCode",
    "InferenceRouterError",
    "BackendError",
    "BackendAuthError",
    "BackendRateLimitError",
    "BackendTransientError",
    "BackendStreamInterruptedError",
    "RateLimitExceededError",
    "RateLimitTimeoutError",
    "RateLimitResetError",
    "DailyQuotaExceededError",
    "CircuitOpenError",
    "UnknownBackendError",
    "AllBackendsExhaustedError",
    "CacheUnavailableError",
]
