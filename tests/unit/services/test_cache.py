"""
Tests for ResponseCache - Redis-backed cache of routed responses.

Reference Documents:
- Building Microservices (Newman) p. 274: graceful degradation
- GUIDELINES: Redis for external state stores

This module tests:
- Hit, miss and TTL behavior against fakeredis
- Disabled cache (no client) as permanent miss / no-op
- Degradation to miss / no-op when Redis fails
- Invalidation, prefix clearing and statistics
"""

import pytest

from inference_router.models.responses import InferenceResponse, TokenUsage


# =============================================================================
# Test Fixtures
# =============================================================================

KEY = "cache:inference:0123456789abcdef0123456789abcdef"


@pytest.fixture
def response_cache(fake_redis):
    """Create ResponseCache with fake Redis."""
    from inference_router.services.cache import ResponseCache

    return ResponseCache(redis_client=fake_redis, ttl_seconds=60)


@pytest.fixture
def sample_response() -> InferenceResponse:
    """Create a sample routed response."""
    return InferenceResponse(
        content="Paris",
        provider="groq",
        model="llama-3.1-8b-instant",
        usage=TokenUsage.of(12, 3),
        cost=0.0,
        latency_ms=41.5,
        chain="chat_speed",
    )


# =============================================================================
# Get / Set
# =============================================================================


class TestResponseCacheGetSet:
    """Round trips through Redis."""

    @pytest.mark.asyncio
    async def test_cache_miss_returns_none(self, response_cache) -> None:
        """An absent key is a miss."""
        assert await response_cache.get(KEY) is None

    @pytest.mark.asyncio
    async def test_cache_hit_returns_response(self, response_cache, sample_response) -> None:
        """A stored response comes back intact."""
        assert await response_cache.set(KEY, sample_response) is True

        cached = await response_cache.get(KEY)

        assert cached == sample_response

    @pytest.mark.asyncio
    async def test_set_applies_default_ttl(self, response_cache, fake_redis, sample_response) -> None:
        """Entries expire after the configured TTL."""
        await response_cache.set(KEY, sample_response)

        ttl = await fake_redis.ttl(KEY)

        assert 0 < ttl <= 60

    @pytest.mark.asyncio
    async def test_set_with_explicit_ttl(self, response_cache, fake_redis, sample_response) -> None:
        """A per-call TTL overrides the default."""
        await response_cache.set(KEY, sample_response, ttl_seconds=5)

        assert 0 < await fake_redis.ttl(KEY) <= 5

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_a_miss(self, response_cache, fake_redis) -> None:
        """A corrupt payload is discarded rather than raised."""
        await fake_redis.set(KEY, "{not json")

        assert await response_cache.get(KEY) is None
        assert response_cache.stats().misses == 1


# =============================================================================
# Disabled and Degraded
# =============================================================================


class TestResponseCacheDegradation:
    """The cache never fails a request."""

    @pytest.mark.asyncio
    async def test_disabled_cache_is_noop(self, sample_response) -> None:
        """Without a client every read misses and every write is skipped."""
        from inference_router.services.cache import ResponseCache

        cache = ResponseCache(None)

        assert cache.enabled is False
        assert await cache.set(KEY, sample_response) is False
        assert await cache.get(KEY) is None
        assert await cache.invalidate(KEY) is False
        assert await cache.clear_all() == 0
        assert await cache.ping() is False

    @pytest.mark.asyncio
    async def test_redis_failure_on_get_is_a_miss(self, broken_redis) -> None:
        """A connection error while reading degrades to a miss."""
        from inference_router.services.cache import ResponseCache

        cache = ResponseCache(broken_redis)

        assert await cache.get(KEY) is None
        stats = cache.stats()
        assert stats.errors == 1
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_redis_failure_on_set_is_skipped(self, broken_redis, sample_response) -> None:
        """A connection error while writing is logged and skipped."""
        from inference_router.services.cache import ResponseCache

        cache = ResponseCache(broken_redis)

        assert await cache.set(KEY, sample_response) is False
        assert cache.stats().stores == 0

    @pytest.mark.asyncio
    async def test_redis_failure_logged_at_warning(self, broken_redis, caplog) -> None:
        """Degradation is visible in the logs."""
        import logging

        from inference_router.services.cache import ResponseCache

        cache = ResponseCache(broken_redis)
        with caplog.at_level(logging.WARNING, logger="inference_router.services.cache"):
            await cache.get(KEY)

        assert "continuing without cache" in caplog.text

    @pytest.mark.asyncio
    async def test_ping_reports_failure(self, broken_redis) -> None:
        """ping() is False when Redis does not answer."""
        from inference_router.services.cache import ResponseCache

        assert await ResponseCache(broken_redis).ping() is False

    @pytest.mark.asyncio
    async def test_ping_reports_success(self, response_cache) -> None:
        """ping() is True against a live store."""
        assert await response_cache.ping() is True


# =============================================================================
# Invalidation
# =============================================================================


class TestResponseCacheInvalidation:
    """Removing entries."""

    @pytest.mark.asyncio
    async def test_invalidate_single_key(self, response_cache, sample_response) -> None:
        """invalidate() removes exactly one entry."""
        await response_cache.set(KEY, sample_response)

        assert await response_cache.invalidate(KEY) is True
        assert await response_cache.invalidate(KEY) is False
        assert await response_cache.get(KEY) is None

    @pytest.mark.asyncio
    async def test_clear_all_only_touches_prefix(
        self, response_cache, fake_redis, sample_response
    ) -> None:
        """clear_all() deletes this cache's keys and leaves others alone."""
        for i in range(3):
            await response_cache.set(f"cache:inference:{i}", sample_response)
        await fake_redis.set("unrelated:key", "keep")

        deleted = await response_cache.clear_all()

        assert deleted == 3
        assert await fake_redis.get("unrelated:key") == "keep"

    @pytest.mark.asyncio
    async def test_clear_all_with_prefix(self, response_cache, sample_response) -> None:
        """An explicit prefix narrows the deletion."""
        await response_cache.set("cache:inference:aa1", sample_response)
        await response_cache.set("cache:inference:aa2", sample_response)
        await response_cache.set("cache:inference:bb1", sample_response)

        assert await response_cache.clear_all("cache:inference:aa") == 2
        assert await response_cache.get("cache:inference:bb1") is not None

    @pytest.mark.asyncio
    async def test_clear_all_prefix_relative_to_cache(self, response_cache, sample_response) -> None:
        """A bare prefix is read under the cache namespace."""
        await response_cache.set("cache:inference:aa1", sample_response)
        await response_cache.set("cache:inference:bb1", sample_response)

        assert await response_cache.clear_all("aa") == 1
        assert await response_cache.get("cache:inference:bb1") is not None

    @pytest.mark.asyncio
    async def test_clear_all_never_leaves_cache_namespace(
        self, response_cache, fake_redis, sample_response
    ) -> None:
        """Glob characters and foreign prefixes cannot reach other keys."""
        await fake_redis.set("session:42", "keep")
        await response_cache.set("cache:inference:abc", sample_response)

        assert await response_cache.clear_all("*") == 0
        assert await response_cache.clear_all("session:") == 0
        assert await response_cache.clear_all("?") == 0

        assert await fake_redis.get("session:42") == "keep"
        assert await response_cache.get("cache:inference:abc") is not None


# =============================================================================
# Statistics
# =============================================================================


class TestResponseCacheStats:
    """Hit/miss accounting."""

    @pytest.mark.asyncio
    async def test_stats_track_lookups(self, response_cache, sample_response) -> None:
        """Hits, misses, stores and hit rate are counted per instance."""
        await response_cache.get(KEY)
        await response_cache.set(KEY, sample_response)
        await response_cache.get(KEY)
        await response_cache.get(KEY)

        stats = response_cache.stats()

        assert stats.enabled is True
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.stores == 1
        assert stats.hit_rate == pytest.approx(0.6667)

    def test_empty_stats(self) -> None:
        """A fresh cache reports a zero hit rate."""
        from inference_router.services.cache import ResponseCache

        stats = ResponseCache(None).stats()

        assert stats.enabled is False
        assert stats.hit_rate == 0.0
