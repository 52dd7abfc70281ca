"""
Services Package

- cache: Redis-backed response cache that degrades to a miss on failure
- cache_keys: request fingerprinting
- pricing: per-model token pricing and cost calculation
"""

from inference_router.services.cache import CacheStats, ResponseCache
from inference_router.services.cache_keys import generate_cache_key, normalize_prompt
from inference_router.services.pricing import PricingTable

__all__ = [
    "ResponseCache",
    "CacheStats",
    "generate_cache_key",
    "normalize_prompt",
    "PricingTable",
]
