"""Models Package - domain types and request/response models."""

from inference_router.models.domain import BackendAttempt, BackendId, RateLimitConfig
from inference_router.models.requests import BackendQuery, InferenceRequest
from inference_router.models.responses import (
    BackendResult,
    InferenceResponse,
    StreamChunk,
    TokenUsage,
)

__all__ = [
    # Domain
    "BackendId",
    "BackendAttempt",
    "RateLimitConfig",
    # Requests
    "InferenceRequest",
    "BackendQuery",
    # Responses
    "InferenceResponse",
    "BackendResult",
    "StreamChunk",
    "TokenUsage",
]
