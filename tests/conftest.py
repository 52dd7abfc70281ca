"""
Pytest configuration and shared fixtures.

Reference Documents:
- Architecture Patterns with Python (Percival & Gregory) p. 157: FakeRepository
  pattern, duck-typed test doubles instead of mocking frameworks
- Newman, Building Microservices: tests that simulate slow and failing backends

This configuration sets up:
- Test markers for categorization
- A fake Redis client (fakeredis)
- A controllable monotonic clock and a sleep that advances it
- Factories for routers wired to FakeBackendAdapters
"""

import asyncio
from typing import Any, Callable, Optional

import fakeredis.aioredis
import pytest

from inference_router.models.domain import BackendId, RateLimitConfig
from inference_router.providers.fake import FakeBackendAdapter
from inference_router.providers.registry import AdapterRegistry
from inference_router.resilience.registry import CircuitBreakerRegistry
from inference_router.resilience.token_bucket import RetryConfig, TokenBucketLimiter
from inference_router.routing.router import FallbackRouter
from inference_router.routing.tables import FallbackChainTable
from inference_router.services.cache import ResponseCache


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    - unit: Tests for individual components
    - integration: Tests that wire several components together
    """
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for service interactions")


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """A FakeClock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> Callable[[float], Any]:
    """
    Sleep that advances the fake clock instead of waiting.

    Yields to the event loop once so other tasks get to run.
    """

    async def _sleep(seconds: float) -> None:
        clock.advance(seconds)
        await asyncio.sleep(0)

    return _sleep


NO_DELAY_RETRY = RetryConfig(
    max_retries=3,
    initial_delay_ms=0,
    max_delay_ms=0,
    backoff_multiplier=1.0,
    jitter_ms=0,
)


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture
def fake_redis():
    """
    Create a fake Redis client for testing.

    Returns:
        FakeRedis: A fake Redis client with decode_responses=True
    """
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


class BrokenRedis:
    """Redis stand-in whose every command fails like a dropped connection."""

    async def get(self, *args: Any, **kwargs: Any) -> Any:
        raise ConnectionError("connection refused")

    async def set(self, *args: Any, **kwargs: Any) -> Any:
        raise ConnectionError("connection refused")

    async def delete(self, *args: Any, **kwargs: Any) -> Any:
        raise ConnectionError("connection refused")

    async def scan(self, *args: Any, **kwargs: Any) -> Any:
        raise ConnectionError("connection refused")

    async def ping(self) -> Any:
        raise ConnectionError("connection refused")


@pytest.fixture
def broken_redis() -> BrokenRedis:
    return BrokenRedis()


# =============================================================================
# Backends and Routers
# =============================================================================

PRIMARY = BackendId(provider="alpha", model="alpha-large")
SECONDARY = BackendId(provider="beta", model="beta-medium")
TERTIARY = BackendId(provider="gamma", model="gamma-small")

TEST_CHAIN = "test_chain"


def generous_limits(*backends: BackendId) -> dict[BackendId, RateLimitConfig]:
    """Limits high enough that the limiter never gets in the way."""
    return {
        b: RateLimitConfig(requests_per_second=100, burst_capacity=100, requests_per_day=10_000)
        for b in backends
    }


@pytest.fixture
def make_router(clock: FakeClock, fake_sleep: Callable[[float], Any]):
    """
    Factory for a FallbackRouter over one three-backend chain.

    Usage:
        router, adapters = make_router(alpha=FakeBackendAdapter(...))

    Adapters not passed get a healthy FakeBackendAdapter. Every chain
    request class maps to TEST_CHAIN.
    """

    def _make(
        chain: Optional[list[BackendId]] = None,
        limits: Optional[dict[BackendId, RateLimitConfig]] = None,
        redis_client: Any = None,
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 30.0,
        half_open_max_calls: Optional[int] = None,
        transient_retries: int = 1,
        use_queue: bool = False,
        acquire_timeout_ms: float = 2000,
        backend_timeout_seconds: float = 60.0,
        **adapters: FakeBackendAdapter,
    ) -> tuple[FallbackRouter, dict[str, FakeBackendAdapter]]:
        backends = chain or [PRIMARY, SECONDARY, TERTIARY]
        registry = AdapterRegistry()
        fakes: dict[str, FakeBackendAdapter] = {}
        for backend in backends:
            adapter = adapters.get(backend.provider) or FakeBackendAdapter(
                provider=backend.provider,
                response_content=f"answer from {backend.provider}",
            )
            registry.register(adapter, provider=backend.provider)
            fakes[backend.provider] = adapter

        router = FallbackRouter(
            adapters=registry,
            chains=FallbackChainTable({TEST_CHAIN: backends}),
            limiter=TokenBucketLimiter(
                limits if limits is not None else generous_limits(*backends),
                retry_config=NO_DELAY_RETRY,
                clock=clock,
                sleep=fake_sleep,
            ),
            breakers=CircuitBreakerRegistry(
                failure_threshold=failure_threshold,
                reset_timeout_seconds=reset_timeout_seconds,
                half_open_max_calls=half_open_max_calls,
                clock=clock,
            ),
            cache=ResponseCache(redis_client, ttl_seconds=60),
            backend_timeout_seconds=backend_timeout_seconds,
            transient_retries=transient_retries,
            use_queue=use_queue,
            acquire_timeout_ms=acquire_timeout_ms,
            retry_config=NO_DELAY_RETRY,
            clock=clock,
            sleep=fake_sleep,
            rng=lambda: 0.0,
        )
        return router, fakes

    return _make
