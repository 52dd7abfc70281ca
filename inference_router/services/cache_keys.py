"""
Cache Key Generation

Exact-match fingerprint of a routed request. Two requests share a key when
their prompts differ only in surrounding whitespace or letter case and their
temperatures round to the same two decimals.
"""

import hashlib
import json

CACHE_KEY_PREFIX = "cache:inference:"


def normalize_prompt(prompt: str) -> str:
    """Strip surrounding whitespace and case-fold."""
    return prompt.strip().casefold()


def generate_cache_key(
    prompt: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    """
    Build the cache key for a request.

    Args:
        prompt: User prompt (normalized before hashing)
        model: Model of the chain's first entry
        temperature: Sampling temperature, rounded to 2 decimals
        max_tokens: Completion token limit

    Returns:
        "cache:inference:" followed by 32 hex characters of SHA-256
    """
    key_parts = {
        "prompt": normalize_prompt(prompt),
        "model": model,
        "temperature": f"{temperature:.2f}",
        "max_tokens": max_tokens,
    }
    key_json = json.dumps(key_parts, sort_keys=True)
    key_hash = hashlib.sha256(key_json.encode()).hexdigest()[:32]
    return f"{CACHE_KEY_PREFIX}{key_hash}"
