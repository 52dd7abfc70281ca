"""
Response Cache Service

Best-effort Redis cache of routed inference responses, keyed by the exact
request fingerprint from cache_keys.generate_cache_key().

The cache never fails a request. With no Redis client every read is a miss
and every write a no-op; a Redis error is logged at WARNING and degrades the
same way.

Pattern: Repository pattern with Redis storage
Pattern: Graceful degradation (Building Microservices p. 274)
"""

import logging
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from inference_router.core.exceptions import CacheUnavailableError
from inference_router.models.responses import InferenceResponse
from inference_router.observability.metrics import record_cache_operation
from inference_router.services.cache_keys import CACHE_KEY_PREFIX

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Default Configuration
# =============================================================================

DEFAULT_CACHE_TTL_SECONDS = 86400  # 24 hours
SCAN_BATCH_SIZE = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(text: str) -> str:
    """Escape Redis MATCH metacharacters so text matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def _strip_prefix(text: str, prefix: str) -> str:
    return text[len(prefix):] if text.startswith(prefix) else text


class CacheStats(BaseModel):
    """Counters for one ResponseCache instance."""

    enabled: bool
    hits: int = 0
    misses: int = 0
    stores: int = 0
    errors: int = 0
    hit_rate: float = 0.0


# =============================================================================
# ResponseCache Service
# =============================================================================


class ResponseCache:
    """
    Service for caching routed inference responses.

    Attributes:
        redis: Redis client, or None when caching is disabled
        ttl_seconds: Default entry time-to-live
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        key_prefix: str = CACHE_KEY_PREFIX,
    ) -> None:
        """
        Initialize ResponseCache.

        Args:
            redis_client: Redis client, None disables the cache
            ttl_seconds: Default TTL for stored entries
            key_prefix: Prefix shared by every key this cache writes
        """
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._errors = 0

    @property
    def enabled(self) -> bool:
        """Whether a cache store is attached."""
        return self._redis is not None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def _run(
        self, operation: str, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            raise CacheUnavailableError(f"Cache {operation} failed: {e}") from e

    def _degrade(self, error: CacheUnavailableError, key: Optional[str] = None) -> None:
        self._errors += 1
        record_cache_operation("error")
        logger.warning(
            f"{error.message}; continuing without cache",
            extra={"cache_key": key},
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[InferenceResponse]:
        """
        Look up a cached response.

        Returns:
            The stored response, or None on miss, disabled cache or store error
        """
        if self._redis is None:
            self._misses += 1
            return None

        try:
            data = await self._run("get", self._redis.get, key)
        except CacheUnavailableError as e:
            self._degrade(e, key)
            self._misses += 1
            return None

        if data is None:
            self._misses += 1
            record_cache_operation("miss")
            return None

        try:
            response = InferenceResponse.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            self._misses += 1
            record_cache_operation("miss")
            return None

        self._hits += 1
        record_cache_operation("hit")
        return response

    async def set(
        self,
        key: str,
        response: InferenceResponse,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Store a response under a key with a TTL.

        Returns:
            True if the entry was written
        """
        if self._redis is None:
            return False

        payload = response.model_dump_json()
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        try:
            await self._run("set", self._redis.set, key, payload, ex=ttl)
        except CacheUnavailableError as e:
            self._degrade(e, key)
            return False

        self._stores += 1
        record_cache_operation("store")
        return True

    async def invalidate(self, key: str) -> bool:
        """
        Remove one entry.

        Returns:
            True if an entry was removed
        """
        if self._redis is None:
            return False
        try:
            deleted = await self._run("invalidate", self._redis.delete, key)
        except CacheUnavailableError as e:
            self._degrade(e, key)
            return False
        return deleted > 0

    async def clear_all(self, prefix: Optional[str] = None) -> int:
        """
        Remove cache entries, all of them or those under a narrower prefix.

        The prefix is always taken relative to this cache's key prefix
        (which may be repeated at its start), so keys outside the cache are
        never matched. Glob characters in it are matched literally.

        Returns:
            Number of keys deleted
        """
        if self._redis is None:
            return 0

        narrower = _escape_glob(_strip_prefix(prefix or "", self._key_prefix))
        pattern = f"{_escape_glob(self._key_prefix)}{narrower}*"
        deleted = 0
        cursor: Any = 0
        try:
            while True:
                cursor, keys = await self._run(
                    "scan", self._redis.scan, cursor, match=pattern, count=SCAN_BATCH_SIZE
                )
                if keys:
                    deleted += await self._run("delete", self._redis.delete, *keys)
                if int(cursor) == 0:
                    break
        except CacheUnavailableError as e:
            self._degrade(e)
        logger.info(f"Cleared {deleted} cache entries matching {pattern}")
        return deleted

    async def ping(self) -> bool:
        """Whether the cache store answers. False when disabled."""
        if self._redis is None:
            return False
        try:
            return bool(await self._run("ping", self._redis.ping))
        except CacheUnavailableError as e:
            self._degrade(e)
            return False

    def stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        return CacheStats(
            enabled=self.enabled,
            hits=self._hits,
            misses=self._misses,
            stores=self._stores,
            errors=self._errors,
            hit_rate=round(self._hits / lookups, 4) if lookups else 0.0,
        )
