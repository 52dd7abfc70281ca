"""
Fallback Router

Routes an inference request across an ordered chain of backends, composing
the response cache, per-backend circuit breakers, per-backend token buckets
and the backend adapters.

Flow for route():
1. Pick the chain from (use_case, priority).
2. Fingerprint the request against the chain's first model; a cache hit is
   returned without touching any backend.
3. Walk the chain. For each backend:
   - skip it if its circuit does not admit calls
   - skip it if the limiter refuses a token (not a circuit failure)
   - call it under a deadline, retrying transient errors a bounded number
     of times with backoff
   - on success record a circuit success, cache and return
   - on final failure record exactly one circuit failure and move on
4. When every backend fails, raise AllBackendsExhaustedError with one
   attempt per chain entry, in chain order.

stream() applies the same gates and falls back only until the first chunk
has been delivered; after that a failure is raised to the caller.

Reference Documents:
- Release It! (Nygard): circuit breaker, timeouts, fail fast
- Microservices Patterns (Richardson): API gateway fallbacks

Pattern: Fallback chain with per-backend bulkheads
"""

import asyncio
import logging
import random
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from redis.asyncio import Redis

from inference_router.core.config import Settings
from inference_router.core.exceptions import (
    AllBackendsExhaustedError,
    BackendError,
    BackendStreamInterruptedError,
    BackendTransientError,
    InferenceRouterError,
    UnknownBackendError,
)
from inference_router.models.domain import BackendAttempt, BackendId
from inference_router.models.requests import BackendQuery, InferenceRequest
from inference_router.models.responses import (
    BackendResult,
    InferenceResponse,
    StreamChunk,
    TokenUsage,
)
from inference_router.observability.metrics import (
    record_request_cost,
    record_routed_request,
    record_token_usage,
)
from inference_router.providers.base import BackendAdapter
from inference_router.providers.registry import AdapterRegistry, create_adapter_registry
from inference_router.resilience.circuit_breaker_state_machine import (
    CircuitBreakerStateMachine,
)
from inference_router.resilience.metrics import (
    record_fallback_attempt,
    record_fallback_exhausted,
    record_fallback_success,
)
from inference_router.resilience.registry import CircuitBreakerRegistry
from inference_router.resilience.token_bucket import (
    DEFAULT_RETRY_CONFIG,
    RateLimitDecision,
    RetryConfig,
    TokenBucketLimiter,
    compute_backoff_delay_ms,
)
from inference_router.routing.tables import (
    DEFAULT_RATE_LIMITS,
    FallbackChainTable,
    load_fallback_chains,
    load_rate_limits,
)
from inference_router.services.cache import ResponseCache
from inference_router.services.cache_keys import generate_cache_key

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BACKEND_TIMEOUT_SECONDS = 60.0
DEFAULT_TRANSIENT_RETRIES = 1
DEFAULT_ACQUIRE_TIMEOUT_MS = 2000

OUTCOME_SUCCESS = "success"
OUTCOME_CIRCUIT_OPEN = "circuit_open"
OUTCOME_RATE_LIMITED = "rate_limited"
OUTCOME_UNKNOWN_BACKEND = "unknown_backend"
OUTCOME_ERROR = "error"


class FallbackRouter:
    """
    Routes requests across fallback chains.

    All mutable state (breakers, buckets, cache) lives in the injected
    collaborators, so two routers never share state unless they share them.

    Args:
        adapters: Backend-to-adapter lookup
        chains: Chain table (default: built-in chains)
        limiter: Token-bucket limiter (default: built-in rate limits)
        breakers: Circuit breaker registry (default thresholds)
        cache: Response cache (default: disabled)
        backend_timeout_seconds: Deadline for one backend call
        transient_retries: Extra attempts after a transient error
        use_queue: Queue for a token instead of moving on when a bucket is empty
        acquire_timeout_ms: Longest queue wait when use_queue is set
        retry_config: Backoff between transient retries
        cache_ttl_seconds: TTL for stored responses (default: the cache's TTL)
        clock: Monotonic time source used for latency
        sleep: Coroutine used to wait between retries
        rng: Jitter source for backoff
    """

    def __init__(
        self,
        adapters: AdapterRegistry,
        chains: Optional[FallbackChainTable] = None,
        limiter: Optional[TokenBucketLimiter] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        cache: Optional[ResponseCache] = None,
        *,
        backend_timeout_seconds: float = DEFAULT_BACKEND_TIMEOUT_SECONDS,
        transient_retries: int = DEFAULT_TRANSIENT_RETRIES,
        use_queue: bool = False,
        acquire_timeout_ms: float = DEFAULT_ACQUIRE_TIMEOUT_MS,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        cache_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._adapters = adapters
        self._chains = chains if chains is not None else FallbackChainTable()
        self._limiter = limiter if limiter is not None else TokenBucketLimiter(DEFAULT_RATE_LIMITS)
        self._breakers = breakers if breakers is not None else CircuitBreakerRegistry()
        self._cache = cache if cache is not None else ResponseCache(None)
        self._backend_timeout_seconds = backend_timeout_seconds
        self._transient_retries = transient_retries
        self._use_queue = use_queue
        self._acquire_timeout_ms = acquire_timeout_ms
        self._retry_config = retry_config
        self._cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def chains(self) -> FallbackChainTable:
        return self._chains

    @property
    def limiter(self) -> TokenBucketLimiter:
        return self._limiter

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def adapters(self) -> AdapterRegistry:
        return self._adapters

    # =========================================================================
    # Cache Helpers
    # =========================================================================

    def cache_key_for(self, request: InferenceRequest) -> Optional[str]:
        """
        Cache key of a request, or None when the request bypasses the cache.

        The key uses the first model of the selected chain, so a response
        served by a fallback backend is still found on the next identical
        request.
        """
        if not request.use_cache or not self._cache.enabled:
            return None
        _, chain = self._chains.select(request.use_case, request.priority)
        if not chain:
            return None
        return generate_cache_key(
            request.prompt, chain[0].model, request.temperature, request.max_tokens
        )

    async def _store(self, cache_key: Optional[str], response: InferenceResponse) -> None:
        if cache_key is not None:
            await self._cache.set(cache_key, response, self._cache_ttl_seconds)

    # =========================================================================
    # Admission
    # =========================================================================

    async def _admit(
        self,
        backend: BackendId,
        chain_name: str,
    ) -> tuple[Optional[BackendAdapter], Optional[BackendAttempt]]:
        """Circuit gate and adapter lookup for one chain entry."""
        breaker = self._breakers.get(backend)
        if not await breaker.can_execute():
            record_fallback_attempt(chain_name, backend.key, OUTCOME_CIRCUIT_OPEN)
            logger.info(
                f"Skipping {backend.key}: circuit open",
                extra={"backend": backend.key, "chain": chain_name},
            )
            return None, BackendAttempt(
                backend=backend,
                reason=f"circuit open (retry in {breaker.seconds_until_retry():.1f}s)",
                error_type="CircuitOpenError",
            )

        try:
            adapter = self._adapters.resolve(backend)
        except UnknownBackendError as e:
            await breaker.release_trial()
            record_fallback_attempt(chain_name, backend.key, OUTCOME_UNKNOWN_BACKEND)
            logger.warning(e.message, extra={"backend": backend.key, "chain": chain_name})
            return None, BackendAttempt(
                backend=backend, reason=e.message, error_type=type(e).__name__
            )

        return adapter, None

    async def _acquire(
        self, backend: BackendId, request: InferenceRequest
    ) -> RateLimitDecision:
        return await self._limiter.acquire(
            backend,
            priority=request.queue_priority,
            max_wait_ms=self._acquire_timeout_ms,
            use_queue=self._use_queue,
        )

    async def _rate_limited(
        self,
        backend: BackendId,
        breaker: CircuitBreakerStateMachine,
        decision: RateLimitDecision,
        chain_name: str,
    ) -> BackendAttempt:
        await breaker.release_trial()
        record_fallback_attempt(chain_name, backend.key, OUTCOME_RATE_LIMITED)
        try:
            decision.raise_for_outcome()
        except InferenceRouterError as e:
            logger.info(
                f"Skipping {backend.key}: {e.message}",
                extra={"backend": backend.key, "chain": chain_name},
            )
            return BackendAttempt(backend=backend, reason=e.message, error_type=type(e).__name__)
        raise AssertionError("granted decision passed as rate limited")

    # =========================================================================
    # Backend Calls
    # =========================================================================

    async def _call(self, adapter: BackendAdapter, backend: BackendId, query: BackendQuery) -> BackendResult:
        try:
            return await asyncio.wait_for(
                adapter.query(query), timeout=self._backend_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise BackendTransientError(
                f"{backend.key} timed out after {self._backend_timeout_seconds}s",
                backend.provider,
                backend.model,
            ) from e

    async def _try_backend(
        self,
        backend: BackendId,
        adapter: BackendAdapter,
        request: InferenceRequest,
        chain_name: str,
    ) -> tuple[Optional[BackendResult], Optional[BackendAttempt]]:
        """
        Call one backend with token acquisition and transient retries.

        Returns (result, None) on success or (None, attempt) on failure.
        """
        breaker = self._breakers.get(backend)
        query = BackendQuery.from_request(request, backend.model)
        last_error: Optional[Exception] = None

        try:
            for attempt in range(self._transient_retries + 1):
                if attempt:
                    delay_ms = compute_backoff_delay_ms(attempt - 1, self._retry_config, self._rng)
                    await self._sleep(delay_ms / 1000)

                decision = await self._acquire(backend, request)
                if not decision.granted:
                    if last_error is None:
                        return None, await self._rate_limited(backend, breaker, decision, chain_name)
                    break

                try:
                    result = await self._call(adapter, backend, query)
                except BackendTransientError as e:
                    last_error = e
                    logger.warning(
                        f"Transient error from {backend.key} "
                        f"(attempt {attempt + 1}/{self._transient_retries + 1}): {e.message}",
                        extra={"backend": backend.key, "chain": chain_name},
                    )
                    continue
                except Exception as e:
                    last_error = e
                    break

                await breaker.record_success()
                return result, None
        except asyncio.CancelledError:
            await asyncio.shield(breaker.release_trial())
            raise

        await breaker.record_failure()
        record_fallback_attempt(chain_name, backend.key, OUTCOME_ERROR)
        reason = last_error.message if isinstance(last_error, InferenceRouterError) else str(last_error)
        logger.warning(
            f"Backend {backend.key} failed: {type(last_error).__name__}: {reason}",
            extra={"backend": backend.key, "chain": chain_name},
        )
        return None, BackendAttempt(
            backend=backend,
            reason=reason or type(last_error).__name__,
            error_type=type(last_error).__name__,
        )

    def _record_success(
        self, chain_name: str, position: int, backend: BackendId, usage: TokenUsage, cost: float
    ) -> None:
        record_fallback_attempt(chain_name, backend.key, OUTCOME_SUCCESS)
        record_fallback_success(chain_name, backend.key, position)
        record_token_usage(backend.provider, backend.model, "input", usage.input_tokens)
        record_token_usage(backend.provider, backend.model, "output", usage.output_tokens)
        record_request_cost(backend.provider, backend.model, cost)
        record_routed_request(chain_name, "served")

    def _exhausted(self, chain_name: str, attempts: list[BackendAttempt]) -> AllBackendsExhaustedError:
        record_fallback_exhausted(chain_name)
        record_routed_request(chain_name, "exhausted")
        error = AllBackendsExhaustedError(attempts, chain_name)
        logger.error(error.message, extra={"chain": chain_name})
        return error

    # =========================================================================
    # Routing
    # =========================================================================

    async def route(self, request: InferenceRequest) -> InferenceResponse:
        """
        Route a request and return the first successful response.

        Raises:
            AllBackendsExhaustedError: Every chain entry failed or was skipped
        """
        start = self._clock()
        chain_name, chain = self._chains.select(request.use_case, request.priority)

        cache_key = self.cache_key_for(request)
        if cache_key is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                record_routed_request(chain_name, "cached")
                logger.info(
                    f"Cache hit for chain {chain_name}",
                    extra={"chain": chain_name, "cache_key": cache_key},
                )
                return cached.model_copy(update={"from_cache": True})

        attempts: list[BackendAttempt] = []
        for position, backend in enumerate(chain):
            adapter, skipped = await self._admit(backend, chain_name)
            if adapter is None:
                attempts.append(skipped)
                continue

            result, failed = await self._try_backend(backend, adapter, request, chain_name)
            if result is None:
                attempts.append(failed)
                continue

            response = InferenceResponse(
                content=result.content,
                provider=backend.provider,
                model=backend.model,
                usage=result.usage,
                cost=result.cost,
                latency_ms=(self._clock() - start) * 1000,
                used_fallback=position > 0,
                chain=chain_name,
            )
            self._record_success(chain_name, position, backend, result.usage, result.cost)
            if position > 0:
                logger.info(
                    f"Served by fallback {backend.key} (position {position}) in chain {chain_name}",
                    extra={"backend": backend.key, "chain": chain_name},
                )
            await self._store(cache_key, response)
            return response

        raise self._exhausted(chain_name, attempts)

    async def stream(self, request: InferenceRequest) -> AsyncIterator[StreamChunk]:
        """
        Route a request and stream the response.

        Falls back to the next backend only while nothing has been yielded.

        Yields:
            StreamChunk objects; the last one has done=True

        Raises:
            AllBackendsExhaustedError: Every chain entry failed before streaming
            BackendStreamInterruptedError: A backend failed mid-stream
        """
        start = self._clock()
        chain_name, chain = self._chains.select(request.use_case, request.priority)

        cache_key = self.cache_key_for(request)
        if cache_key is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                record_routed_request(chain_name, "cached")
                yield StreamChunk(
                    content=cached.content,
                    index=0,
                    provider=cached.provider,
                    model=cached.model,
                    from_cache=True,
                )
                yield StreamChunk(
                    index=1,
                    done=True,
                    provider=cached.provider,
                    model=cached.model,
                    usage=cached.usage,
                    cost=cached.cost,
                    from_cache=True,
                )
                return

        attempts: list[BackendAttempt] = []
        for position, backend in enumerate(chain):
            adapter, skipped = await self._admit(backend, chain_name)
            if adapter is None:
                attempts.append(skipped)
                continue

            breaker = self._breakers.get(backend)
            try:
                decision = await self._acquire(backend, request)
            except asyncio.CancelledError:
                await asyncio.shield(breaker.release_trial())
                raise
            if not decision.granted:
                attempts.append(await self._rate_limited(backend, breaker, decision, chain_name))
                continue

            query = BackendQuery.from_request(request, backend.model)
            iterator = adapter.stream(query).__aiter__()
            parts: list[str] = []
            final: Optional[StreamChunk] = None
            error: Optional[Exception] = None

            try:
                while True:
                    try:
                        chunk = await asyncio.wait_for(
                            iterator.__anext__(), timeout=self._backend_timeout_seconds
                        )
                    except StopAsyncIteration:
                        break
                    if chunk.done:
                        final = chunk
                        break
                    if not chunk.content:
                        continue
                    index = len(parts)
                    parts.append(chunk.content)
                    yield StreamChunk(
                        content=chunk.content,
                        index=index,
                        provider=backend.provider,
                        model=backend.model,
                    )
            except (asyncio.CancelledError, GeneratorExit):
                # Consumer went away; hand back any half-open trial slot
                await asyncio.shield(breaker.release_trial())
                raise
            except Exception as e:
                error = e
            finally:
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    await aclose()

            if error is not None:
                await breaker.record_failure()
                record_fallback_attempt(chain_name, backend.key, OUTCOME_ERROR)
                if isinstance(error, asyncio.TimeoutError):
                    reason = f"{backend.key} timed out after {self._backend_timeout_seconds}s"
                elif isinstance(error, InferenceRouterError):
                    reason = error.message
                else:
                    reason = str(error) or type(error).__name__

                if parts:
                    logger.error(
                        f"Stream from {backend.key} failed after {len(parts)} chunk(s): {reason}",
                        extra={"backend": backend.key, "chain": chain_name},
                    )
                    raise BackendStreamInterruptedError(
                        f"Stream from {backend.key} interrupted: {reason}",
                        backend.provider,
                        backend.model,
                    ) from error

                logger.warning(
                    f"Stream from {backend.key} failed before first chunk: {reason}",
                    extra={"backend": backend.key, "chain": chain_name},
                )
                attempts.append(
                    BackendAttempt(backend=backend, reason=reason, error_type=type(error).__name__)
                )
                continue

            await breaker.record_success()
            usage = final.usage if final and final.usage else TokenUsage()
            cost = final.cost if final and final.cost is not None else 0.0
            self._record_success(chain_name, position, backend, usage, cost)

            yield StreamChunk(
                index=len(parts),
                done=True,
                provider=backend.provider,
                model=backend.model,
                usage=usage,
                cost=cost,
            )

            await self._store(
                cache_key,
                InferenceResponse(
                    content="".join(parts),
                    provider=backend.provider,
                    model=backend.model,
                    usage=usage,
                    cost=cost,
                    latency_ms=(self._clock() - start) * 1000,
                    used_fallback=position > 0,
                    chain=chain_name,
                ),
            )
            return

        raise self._exhausted(chain_name, attempts)

    # =========================================================================
    # Status and Lifecycle
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        """JSON-able view of chains, circuits, buckets and cache."""
        return {
            "chains": self._chains.to_dict(),
            "circuits": self._breakers.snapshot(),
            "rate_limits": self._limiter.snapshot(),
            "rate_limit_summary": self._limiter.get_summary(),
            "cache": self._cache.stats().model_dump(),
        }

    def start(self) -> None:
        """Start background maintenance (daily quota sweep)."""
        self._limiter.start()

    async def aclose(self) -> None:
        """Stop background tasks and close adapters."""
        await self._limiter.aclose()
        await self._adapters.aclose()


# =============================================================================
# Factory
# =============================================================================


def create_fallback_router(
    settings: Settings,
    redis_client: Optional[Redis] = None,
    adapters: Optional[AdapterRegistry] = None,
) -> FallbackRouter:
    """
    Build a router from application settings.

    Args:
        settings: Application settings
        redis_client: Cache store; None (or cache_enabled=False) disables caching
        adapters: Adapter registry override (default: built from settings)
    """
    chains = (
        load_fallback_chains(settings.fallback_chains_file)
        if settings.fallback_chains_file
        else FallbackChainTable()
    )
    rate_limits = (
        load_rate_limits(settings.rate_limits_file)
        if settings.rate_limits_file
        else DEFAULT_RATE_LIMITS
    )
    cache = ResponseCache(
        redis_client if settings.cache_enabled else None,
        ttl_seconds=settings.cache_ttl_seconds,
    )

    return FallbackRouter(
        adapters=(
            adapters if adapters is not None
            else create_adapter_registry(settings, chains.providers())
        ),
        chains=chains,
        limiter=TokenBucketLimiter.from_settings(settings, rate_limits),
        breakers=CircuitBreakerRegistry.from_settings(settings),
        cache=cache,
        backend_timeout_seconds=settings.backend_timeout_seconds,
        transient_retries=settings.transient_retries,
        use_queue=settings.rate_limit_use_queue,
        acquire_timeout_ms=settings.rate_limit_acquire_timeout_ms,
        retry_config=RetryConfig.from_settings(settings),
        cache_ttl_seconds=settings.cache_ttl_seconds,
    )
