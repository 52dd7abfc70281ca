"""
Token-Bucket Rate Limiter with Priority Wait Queue

Per-backend admission control for outbound inference calls.

Each backend owns a token bucket that starts full at its burst capacity and
refills lazily at requests_per_second whenever it is read. A call consumes one
token. A daily request counter sits next to the bucket and resets at the next
midnight (local time by default, UTC when configured).

When the bucket is empty a caller either fails fast (use_queue=False) or
joins a priority-ordered wait queue with a deadline. One drain task per
backend hands out refilled tokens to waiters, highest priority first and
first-come-first-served within a priority.

Bucket and queue mutations happen between awaits, so the event loop
serializes them without a lock.

Reference Documents:
- Release It! (Nygard): bulkheads and rate limiting
- heapq-backed scheduling as in adaptive-rate-limiter's memory backend

Pattern: Token bucket with lazy refill (no background refill timers)
"""

import asyncio
import heapq
import itertools
import logging
import math
import random
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Literal,
    Mapping,
    Optional,
    TypeVar,
)

from inference_router.core.exceptions import (
    BackendRateLimitError,
    DailyQuotaExceededError,
    RateLimitExceededError,
    RateLimitResetError,
    RateLimitTimeoutError,
)
from inference_router.models.domain import BackendId, RateLimitConfig
from inference_router.resilience.metrics import (
    record_limiter_decision,
    record_limiter_state,
)

if TYPE_CHECKING:
    from inference_router.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Constants
# =============================================================================

DEFAULT_RATE_LIMIT = RateLimitConfig(
    requests_per_second=10,
    burst_capacity=50,
    tokens_per_minute=100_000,
    requests_per_day=10_000,
)

DEFAULT_MAX_WAIT_MS = 30_000
MAX_DRAIN_INTERVAL_SECONDS = 1.0
DAILY_SWEEP_INTERVAL_SECONDS = 3600.0

RATE_LIMIT_MESSAGE_MARKERS = ("rate limit", "quota exceeded")


# =============================================================================
# Decisions and Retry Configuration
# =============================================================================


class RateLimitOutcome(str, Enum):
    """Result of a token acquisition."""

    GRANTED = "granted"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    DAILY_QUOTA_EXCEEDED = "daily_quota_exceeded"
    RESET = "reset"


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of TokenBucketLimiter.acquire().

    Attributes:
        backend: Backend the token was requested for
        outcome: What happened
        waited_ms: Time spent queued (0 for immediate decisions)
        retry_after_ms: Estimated time until the next token, when refused
    """

    backend: BackendId
    outcome: RateLimitOutcome
    waited_ms: float = 0.0
    retry_after_ms: Optional[float] = None

    @property
    def granted(self) -> bool:
        return self.outcome == RateLimitOutcome.GRANTED

    def raise_for_outcome(self) -> None:
        """
        Raise the exception matching a refused acquisition.

        Raises:
            RateLimitExceededError: Bucket empty and the caller did not queue
            RateLimitTimeoutError: Deadline passed while queued
            DailyQuotaExceededError: Daily quota used up
            RateLimitResetError: Bucket was reset while queued
        """
        key = self.backend.key
        if self.outcome == RateLimitOutcome.GRANTED:
            return
        if self.outcome == RateLimitOutcome.DAILY_QUOTA_EXCEEDED:
            raise DailyQuotaExceededError(
                f"Daily request quota exhausted for {key}", self.backend, self.retry_after_ms
            )
        if self.outcome == RateLimitOutcome.TIMEOUT:
            raise RateLimitTimeoutError(
                f"Timed out after {self.waited_ms:.0f}ms waiting for a token for {key}",
                self.backend,
                self.retry_after_ms,
            )
        if self.outcome == RateLimitOutcome.RESET:
            raise RateLimitResetError(
                f"Bucket reset while waiting for a token for {key}", self.backend
            )
        raise RateLimitExceededError(
            f"Rate limit exceeded for {key}", self.backend, self.retry_after_ms
        )


@dataclass(frozen=True)
class RetryConfig:
    """Backoff policy for execute_with_retry()."""

    max_retries: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0
    jitter_ms: float = 1000

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryConfig":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            jitter_ms=settings.retry_jitter_ms,
        )


DEFAULT_RETRY_CONFIG = RetryConfig()


def compute_backoff_delay_ms(
    attempt: int,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Exponential backoff delay for a zero-based retry attempt.

    The exponential part is capped at max_delay_ms; jitter in
    [0, jitter_ms) is added on top.
    """
    base = config.initial_delay_ms * (config.backoff_multiplier ** attempt)
    return min(base, config.max_delay_ms) + rng() * config.jitter_ms


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Whether an error means "try again later".

    Daily quota exhaustion is excluded; waiting will not help until midnight.
    A reset refusal is excluded too: the bucket was reset or the limiter
    is closing, and the caller should see that.
    """
    if isinstance(error, (DailyQuotaExceededError, RateLimitResetError)):
        return False
    if isinstance(error, (RateLimitExceededError, BackendRateLimitError)):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MESSAGE_MARKERS)


# =============================================================================
# Bucket and Queue State
# =============================================================================


@dataclass
class TokenBucket:
    """
    Token state for one backend.

    Invariant: 0 <= tokens <= burst_capacity.
    """

    backend: BackendId
    capacity: float
    burst_capacity: float
    refill_rate: float
    tokens: float
    last_refill: float
    requests_per_day: int
    daily_reset_at: datetime
    requests_today: int = 0

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.burst_capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self) -> None:
        self.tokens -= 1
        self.requests_today += 1

    @property
    def daily_exhausted(self) -> bool:
        return self.requests_today >= self.requests_per_day

    def seconds_until_next_token(self) -> float:
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_rate


@dataclass(order=True)
class QueuedWaiter:
    """
    A caller waiting for a token.

    Heap order: higher priority first, then earlier enqueue, then arrival
    sequence so equal timestamps stay FIFO.
    """

    sort_key: tuple[int, float, int] = field(init=False, repr=False)
    priority: int = field(compare=False)
    enqueued_at: float = field(compare=False)
    deadline: float = field(compare=False)
    seq: int = field(compare=False)
    backend: BackendId = field(compare=False)
    future: "asyncio.Future[RateLimitDecision]" = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        self.sort_key = (-self.priority, self.enqueued_at, self.seq)


@dataclass
class RateLimitMetrics:
    """Counters and gauges for one backend."""

    total_requests: int = 0
    successful_requests: int = 0
    rate_limited_requests: int = 0
    queued_requests: int = 0
    average_wait_ms: float = 0.0
    burst_usage: float = 0.0
    current_tokens: float = 0.0
    capacity: float = 0.0
    queue_length: int = 0
    requests_today: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _BackendState:
    bucket: TokenBucket
    metrics: RateLimitMetrics
    queue: list[QueuedWaiter] = field(default_factory=list)
    drain_task: Optional["asyncio.Task[None]"] = None


# =============================================================================
# Limiter
# =============================================================================


class TokenBucketLimiter:
    """
    Per-backend token buckets with priority queueing and daily quotas.

    Buckets are created lazily on first reference from the configured limits;
    backends without configuration fall back to DEFAULT_RATE_LIMIT.

    Args:
        configs: Limits per backend
        retry_config: Default policy for execute_with_retry()
        clock: Monotonic time source in seconds
        sleep: Coroutine used by the drain and retry loops to wait
        wall_clock: Timezone-aware "now" used for the daily reset boundary
        daily_reset_timezone: "local" or "utc", used when wall_clock is not given
        rng: Source of jitter in [0, 1)
    """

    def __init__(
        self,
        configs: Optional[Mapping[BackendId, RateLimitConfig]] = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        wall_clock: Optional[Callable[[], datetime]] = None,
        daily_reset_timezone: Literal["local", "utc"] = "local",
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._configs: dict[BackendId, RateLimitConfig] = dict(configs or {})
        self._retry_config = retry_config
        self._clock = clock
        self._sleep = sleep
        self._wall_clock = wall_clock or _default_wall_clock(daily_reset_timezone)
        self._rng = rng
        self._states: dict[BackendId, _BackendState] = {}
        self._seq = itertools.count()
        self._sweeper: Optional["asyncio.Task[None]"] = None

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        configs: Optional[Mapping[BackendId, RateLimitConfig]] = None,
    ) -> "TokenBucketLimiter":
        """Create a limiter using the retry and reset settings."""
        return cls(
            configs=configs,
            retry_config=RetryConfig.from_settings(settings),
            daily_reset_timezone=settings.rate_limit_daily_reset_timezone,
        )

    # =========================================================================
    # State Management
    # =========================================================================

    def config_for(self, backend: BackendId) -> RateLimitConfig:
        """Configured limits for a backend, or the defaults."""
        return self._configs.get(backend, DEFAULT_RATE_LIMIT)

    def _state(self, backend: BackendId) -> _BackendState:
        state = self._states.get(backend)
        if state is not None:
            return state

        if backend not in self._configs:
            logger.warning(
                f"No rate limit configured for {backend.key}, using defaults",
                extra={"backend": backend.key},
            )
        config = self.config_for(backend)
        bucket = TokenBucket(
            backend=backend,
            capacity=config.requests_per_second,
            burst_capacity=config.burst_capacity,
            refill_rate=config.requests_per_second,
            tokens=float(config.burst_capacity),
            last_refill=self._clock(),
            requests_per_day=config.requests_per_day,
            daily_reset_at=_next_midnight(self._wall_clock()),
        )
        state = _BackendState(
            bucket=bucket,
            metrics=RateLimitMetrics(
                capacity=config.burst_capacity,
                current_tokens=bucket.tokens,
            ),
        )
        self._states[backend] = state
        return state

    def bucket(self, backend: BackendId) -> TokenBucket:
        """The bucket for a backend, created on first reference."""
        return self._state(backend).bucket

    def _refresh(self, state: _BackendState) -> None:
        self._check_daily_reset(state)
        state.bucket.refill(self._clock())

    def _check_daily_reset(self, state: _BackendState) -> bool:
        now = self._wall_clock()
        bucket = state.bucket
        if now < bucket.daily_reset_at:
            return False
        logger.info(
            f"Daily quota reset for {bucket.backend.key} "
            f"after {bucket.requests_today} requests",
            extra={"backend": bucket.backend.key},
        )
        bucket.requests_today = 0
        bucket.daily_reset_at = _next_midnight(now)
        return True

    def _update_gauges(self, state: _BackendState) -> None:
        bucket = state.bucket
        metrics = state.metrics
        metrics.current_tokens = bucket.tokens
        metrics.queue_length = len(state.queue)
        metrics.requests_today = bucket.requests_today
        metrics.burst_usage = (
            (bucket.burst_capacity - bucket.tokens) / bucket.burst_capacity * 100
        )
        record_limiter_state(bucket.backend.key, bucket.tokens, len(state.queue))

    def _decide(
        self,
        state: _BackendState,
        outcome: RateLimitOutcome,
        waited_ms: float = 0.0,
    ) -> RateLimitDecision:
        metrics = state.metrics
        if outcome == RateLimitOutcome.GRANTED:
            metrics.successful_requests += 1
            n = metrics.successful_requests
            metrics.average_wait_ms += (waited_ms - metrics.average_wait_ms) / n
        else:
            metrics.rate_limited_requests += 1

        retry_after_ms = None
        if outcome != RateLimitOutcome.GRANTED:
            retry_after_ms = state.bucket.seconds_until_next_token() * 1000

        self._update_gauges(state)
        record_limiter_decision(state.bucket.backend.key, outcome.value, waited_ms)
        return RateLimitDecision(
            backend=state.bucket.backend,
            outcome=outcome,
            waited_ms=waited_ms,
            retry_after_ms=retry_after_ms,
        )

    # =========================================================================
    # Acquisition
    # =========================================================================

    async def acquire(
        self,
        backend: BackendId,
        *,
        priority: int = 0,
        max_wait_ms: float = DEFAULT_MAX_WAIT_MS,
        use_queue: bool = True,
    ) -> RateLimitDecision:
        """
        Acquire one token for a backend.

        Args:
            backend: Backend to call
            priority: Queue urgency, higher is served first
            max_wait_ms: Deadline for a queued waiter
            use_queue: Queue when empty instead of failing fast

        Returns:
            RateLimitDecision. Call raise_for_outcome() to convert a refusal
            into an exception.
        """
        state = self._state(backend)
        self._refresh(state)
        state.metrics.total_requests += 1
        bucket = state.bucket

        if bucket.daily_exhausted:
            logger.warning(
                f"Daily quota exhausted for {backend.key} "
                f"({bucket.requests_today}/{bucket.requests_per_day})",
                extra={"backend": backend.key},
            )
            return self._decide(state, RateLimitOutcome.DAILY_QUOTA_EXCEEDED)

        if bucket.tokens >= 1 and (not use_queue or not state.queue):
            bucket.consume()
            return self._decide(state, RateLimitOutcome.GRANTED)

        if not use_queue:
            logger.debug(
                f"Rate limited {backend.key}: bucket empty",
                extra={"backend": backend.key},
            )
            return self._decide(state, RateLimitOutcome.REJECTED)

        return await self._wait_in_queue(state, priority, max_wait_ms)

    async def _wait_in_queue(
        self,
        state: _BackendState,
        priority: int,
        max_wait_ms: float,
    ) -> RateLimitDecision:
        now = self._clock()
        timeout_seconds = max(0.0, max_wait_ms / 1000)
        waiter = QueuedWaiter(
            priority=priority,
            enqueued_at=now,
            deadline=now + timeout_seconds,
            seq=next(self._seq),
            backend=state.bucket.backend,
            future=asyncio.get_running_loop().create_future(),
        )
        heapq.heappush(state.queue, waiter)
        state.metrics.queued_requests += 1
        self._update_gauges(state)
        self._ensure_drain(state)

        try:
            return await asyncio.wait_for(waiter.future, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            self._remove_waiter(state, waiter)
            waited_ms = (self._clock() - waiter.enqueued_at) * 1000
            return self._decide(state, RateLimitOutcome.TIMEOUT, waited_ms)
        except asyncio.CancelledError:
            self._remove_waiter(state, waiter)
            self._update_gauges(state)
            raise

    def _remove_waiter(self, state: _BackendState, waiter: QueuedWaiter) -> None:
        if waiter in state.queue:
            state.queue.remove(waiter)
            heapq.heapify(state.queue)

    def _resolve(
        self,
        state: _BackendState,
        waiter: QueuedWaiter,
        outcome: RateLimitOutcome,
        now: float,
    ) -> None:
        if waiter.future.done():
            return
        waited_ms = (now - waiter.enqueued_at) * 1000
        waiter.future.set_result(self._decide(state, outcome, waited_ms))

    # =========================================================================
    # Queue Draining
    # =========================================================================

    def _ensure_drain(self, state: _BackendState) -> None:
        if state.drain_task is None or state.drain_task.done():
            state.drain_task = asyncio.get_running_loop().create_task(
                self._drain(state),
                name=f"rate-limit-drain:{state.bucket.backend.key}",
            )

    def _drain_interval(self, state: _BackendState, now: float) -> float:
        interval = min(
            math.ceil(1000 / state.bucket.refill_rate) / 1000,
            MAX_DRAIN_INTERVAL_SECONDS,
        )
        earliest_deadline = min(w.deadline for w in state.queue)
        return max(0.0, min(interval, earliest_deadline - now))

    def _expire_waiters(self, state: _BackendState, now: float) -> None:
        expired = [w for w in state.queue if w.deadline <= now or w.future.done()]
        if not expired:
            return
        state.queue = [w for w in state.queue if w not in expired]
        heapq.heapify(state.queue)
        for waiter in expired:
            self._resolve(state, waiter, RateLimitOutcome.TIMEOUT, now)

    async def _drain(self, state: _BackendState) -> None:
        bucket = state.bucket
        try:
            while state.queue:
                now = self._clock()
                self._refresh(state)
                self._expire_waiters(state, now)
                if not state.queue:
                    break

                if bucket.daily_exhausted:
                    waiter = heapq.heappop(state.queue)
                    self._resolve(state, waiter, RateLimitOutcome.DAILY_QUOTA_EXCEEDED, now)
                    continue

                if bucket.tokens >= 1:
                    waiter = heapq.heappop(state.queue)
                    if waiter.future.done():
                        continue
                    bucket.consume()
                    self._resolve(state, waiter, RateLimitOutcome.GRANTED, now)
                    continue

                await self._sleep(self._drain_interval(state, now))
        finally:
            self._update_gauges(state)
            if state.drain_task is asyncio.current_task():
                state.drain_task = None

    # =========================================================================
    # Retry
    # =========================================================================

    async def execute_with_retry(
        self,
        backend: BackendId,
        operation: Callable[[], Awaitable[T]],
        retry_config: Optional[RetryConfig] = None,
    ) -> T:
        """
        Run an operation under the backend's rate limit, retrying rate limits.

        Each attempt queues for a token with the attempt number as priority,
        so retries overtake fresh callers. Rate-limit-like failures back off
        exponentially with jitter; any other error propagates at once, and
        daily quota exhaustion is never retried.

        Raises:
            DailyQuotaExceededError: Daily quota used up
            Exception: The last rate-limit error once retries run out, or
                the first non-rate-limit error
        """
        config = retry_config or self._retry_config
        attempt = 0
        while True:
            decision = await self.acquire(
                backend,
                priority=attempt,
                max_wait_ms=config.max_delay_ms,
                use_queue=True,
            )
            try:
                decision.raise_for_outcome()
                return await operation()
            except Exception as e:
                if not is_rate_limit_error(e) or attempt >= config.max_retries:
                    raise
                delay_ms = compute_backoff_delay_ms(attempt, config, self._rng)
                logger.warning(
                    f"Rate limited on {backend.key}, retrying in {delay_ms:.0f}ms "
                    f"(attempt {attempt + 1}/{config.max_retries})",
                    extra={"backend": backend.key, "error": str(e)},
                )
            attempt += 1
            await self._sleep(delay_ms / 1000)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reset_bucket(self, backend: BackendId) -> None:
        """
        Refill a bucket, clear its daily counter and metrics, and cancel
        every waiter queued on it with a RESET outcome.
        """
        state = self._state(backend)
        bucket = state.bucket
        now = self._clock()

        waiters, state.queue = state.queue, []
        for waiter in waiters:
            if not waiter.future.done():
                waiter.future.set_result(
                    RateLimitDecision(
                        backend=backend,
                        outcome=RateLimitOutcome.RESET,
                        waited_ms=(now - waiter.enqueued_at) * 1000,
                    )
                )

        bucket.tokens = bucket.burst_capacity
        bucket.last_refill = now
        bucket.requests_today = 0
        bucket.daily_reset_at = _next_midnight(self._wall_clock())
        state.metrics = RateLimitMetrics(capacity=bucket.burst_capacity)
        self._update_gauges(state)
        logger.info(
            f"Rate limit bucket reset for {backend.key}, "
            f"{len(waiters)} waiter(s) cancelled",
            extra={"backend": backend.key},
        )

    def sweep_daily_resets(self) -> int:
        """Apply due daily resets to every bucket. Returns how many reset."""
        return sum(1 for state in self._states.values() if self._check_daily_reset(state))

    async def _sweep_loop(self) -> None:
        while True:
            await self._sleep(DAILY_SWEEP_INTERVAL_SECONDS)
            self.sweep_daily_resets()

    def start(self) -> None:
        """Start the hourly daily-reset sweep. Requires a running loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(
                self._sweep_loop(), name="rate-limit-daily-sweep"
            )

    async def aclose(self) -> None:
        """Stop background tasks and release every queued waiter."""
        tasks = [s.drain_task for s in self._states.values() if s.drain_task]
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        now = self._clock()
        for state in self._states.values():
            waiters, state.queue = state.queue, []
            for waiter in waiters:
                self._resolve(state, waiter, RateLimitOutcome.RESET, now)

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_queue_length(self, backend: BackendId) -> int:
        return len(self._state(backend).queue)

    def get_current_tokens(self, backend: BackendId) -> float:
        state = self._state(backend)
        self._refresh(state)
        return state.bucket.tokens

    def is_rate_limited(self, backend: BackendId) -> bool:
        """True if an immediate acquire would be refused."""
        state = self._state(backend)
        self._refresh(state)
        return state.bucket.tokens < 1 or state.bucket.daily_exhausted

    def time_until_next_token_ms(self, backend: BackendId) -> float:
        state = self._state(backend)
        self._refresh(state)
        return state.bucket.seconds_until_next_token() * 1000

    def get_metrics(
        self,
        backend: Optional[BackendId] = None,
        provider: Optional[str] = None,
    ) -> dict[str, RateLimitMetrics]:
        """
        Metrics keyed by backend key.

        Args:
            backend: Restrict to one backend (created if unseen)
            provider: Restrict to backends of one provider
        """
        if backend is not None:
            state = self._state(backend)
            self._update_gauges(state)
            return {backend.key: state.metrics}

        result = {}
        for backend_id, state in self._states.items():
            if provider is not None and backend_id.provider != provider:
                continue
            self._update_gauges(state)
            result[backend_id.key] = state.metrics
        return result

    def get_summary(self) -> dict[str, Any]:
        """Totals across all backends with a per-provider breakdown."""
        by_provider: dict[str, dict[str, int]] = {}
        totals = {"requests": 0, "successful": 0, "rate_limited": 0, "queued": 0}

        for backend, state in self._states.items():
            m = state.metrics
            entry = by_provider.setdefault(
                backend.provider,
                {"backends": 0, "requests": 0, "successful": 0, "rate_limited": 0},
            )
            entry["backends"] += 1
            entry["requests"] += m.total_requests
            entry["successful"] += m.successful_requests
            entry["rate_limited"] += m.rate_limited_requests
            totals["requests"] += m.total_requests
            totals["successful"] += m.successful_requests
            totals["rate_limited"] += m.rate_limited_requests
            totals["queued"] += m.queued_requests

        success_rate = (
            totals["successful"] / totals["requests"] * 100 if totals["requests"] else 0.0
        )
        return {
            "total_backends": len(self._states),
            "total_requests": totals["requests"],
            "successful_requests": totals["successful"],
            "rate_limited_requests": totals["rate_limited"],
            "queued_requests": totals["queued"],
            "success_rate": round(success_rate, 2),
            "by_provider": by_provider,
        }

    def snapshot(self) -> list[dict[str, Any]]:
        """Per-backend bucket view for status endpoints."""
        rows = []
        for backend in sorted(self._states, key=lambda b: b.key):
            state = self._states[backend]
            self._refresh(state)
            self._update_gauges(state)
            rows.append(
                {
                    "backend": backend.key,
                    "tokens": round(state.bucket.tokens, 3),
                    "burst_capacity": state.bucket.burst_capacity,
                    "requests_today": state.bucket.requests_today,
                    "requests_per_day": state.bucket.requests_per_day,
                    "daily_reset_at": state.bucket.daily_reset_at.isoformat(),
                    "queue_length": len(state.queue),
                }
            )
        return rows


# =============================================================================
# Daily Boundary Helpers
# =============================================================================


def _default_wall_clock(tz: str) -> Callable[[], datetime]:
    if tz == "utc":
        return lambda: datetime.now(timezone.utc)
    return lambda: datetime.now().astimezone()


def _next_midnight(now: datetime) -> datetime:
    """First midnight strictly after now, in now's timezone."""
    return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
