"""
Resilience patterns for the Inference Router.

This module provides:
- CircuitBreakerStateMachine: per-backend circuit breaker
- CircuitBreakerRegistry: lazily created breakers keyed by backend
- TokenBucketLimiter: per-backend token buckets with a priority wait queue
- Prometheus metrics for transitions, fallbacks and limiter decisions

Reference Documents:
- Building Reactive Microservices in Java (Escoffier): Circuit breaker pattern
- Microservices Patterns (Richardson): API Gateway resilience
"""

from inference_router.resilience.circuit_breaker_state_machine import (
    CircuitBreakerState,
    CircuitBreakerStateMachine,
)
from inference_router.resilience.metrics import (
    record_circuit_state_transition,
    record_fallback_attempt,
    record_fallback_exhausted,
    record_fallback_success,
)
from inference_router.resilience.registry import CircuitBreakerRegistry
from inference_router.resilience.token_bucket import (
    RateLimitDecision,
    RateLimitOutcome,
    RetryConfig,
    TokenBucketLimiter,
    compute_backoff_delay_ms,
    is_rate_limit_error,
)

__all__ = [
    # Circuit Breaker
    "CircuitBreakerStateMachine",
    "CircuitBreakerState",
    "CircuitBreakerRegistry",
    # Rate Limiting
    "TokenBucketLimiter",
    "RateLimitDecision",
    "RateLimitOutcome",
    "RetryConfig",
    "compute_backoff_delay_ms",
    "is_rate_limit_error",
    # Metrics
    "record_circuit_state_transition",
    "record_fallback_attempt",
    "record_fallback_success",
    "record_fallback_exhausted",
]
