"""
Routing Package

- tables: default fallback chains and rate limits, plus JSON loaders
- router: FallbackRouter, which walks a chain through breakers, limiter and cache
"""

from inference_router.routing.router import FallbackRouter, create_fallback_router
from inference_router.routing.tables import (
    DEFAULT_FALLBACK_CHAINS,
    DEFAULT_RATE_LIMITS,
    FallbackChainTable,
    load_fallback_chains,
    load_rate_limits,
)

__all__ = [
    "FallbackRouter",
    "create_fallback_router",
    "FallbackChainTable",
    "DEFAULT_FALLBACK_CHAINS",
    "DEFAULT_RATE_LIMITS",
    "load_fallback_chains",
    "load_rate_limits",
]
