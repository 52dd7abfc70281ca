"""
Circuit Breaker State Machine

This module implements the per-backend circuit breaker used by the fallback
router to stop calling a backend that keeps failing.

Reference Documents:
- Building Reactive Microservices in Java (Escoffier) Ch.6, pp.54-62
- Release It! (Nygard): Stability patterns

State Machine:
    CLOSED: Normal operation, calls pass through
    OPEN: Circuit tripped, the backend is skipped until the cooldown elapses
    HALF_OPEN: Cooldown elapsed, trial calls pass through

Half-open semantics:
    The failure count is not reset when the circuit moves to HALF_OPEN, so a
    single failed trial reopens it. By default every caller is admitted while
    HALF_OPEN; set half_open_max_calls to bound concurrent trial calls
    (half_open_max_calls=1 gives a single probe).

State is protected by asyncio.Lock() and read against an injectable clock so
tests can drive cooldowns with simulated time.
"""

import asyncio
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from inference_router.core.exceptions import CircuitOpenError
from inference_router.models.domain import BackendId
from inference_router.resilience.metrics import record_circuit_state_transition

if TYPE_CHECKING:
    from inference_router.core.config import Settings

T = TypeVar("T")


# =============================================================================
# Constants
# =============================================================================

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT_SECONDS = 30.0


# =============================================================================
# State Enum
# =============================================================================


class CircuitBreakerState(Enum):
    """
    State of a circuit breaker.

    Per *Building Reactive Microservices in Java*:
    "A circuit breaker is a three-state automaton that manages an interaction.
    It starts in a closed state, switches to open after N failures,
    and goes to half-open after cooldown to probe recovery."
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# =============================================================================
# Circuit Breaker State Machine
# =============================================================================


class CircuitBreakerStateMachine:
    """
    Circuit breaker for one inference backend.

    Example:
        >>> breaker = CircuitBreakerStateMachine(BackendId(provider="groq", model="m"))
        >>> if await breaker.can_execute():
        ...     try:
        ...         result = await call_backend()
        ...         await breaker.record_success()
        ...     except BackendError:
        ...         await breaker.record_failure()

    Attributes:
        backend: Backend guarded by this breaker
        failure_threshold: Consecutive failures before opening
        reset_timeout_seconds: Cooldown before a trial call is admitted
        half_open_max_calls: Concurrent trial calls while HALF_OPEN (None = unlimited)
    """

    def __init__(
        self,
        backend: BackendId,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_seconds: float = DEFAULT_RESET_TIMEOUT_SECONDS,
        half_open_max_calls: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize CircuitBreakerStateMachine.

        Args:
            backend: Backend this breaker guards (its key names the metrics)
            failure_threshold: Number of consecutive failures before opening
            reset_timeout_seconds: Seconds to wait before attempting recovery
            half_open_max_calls: Bound on concurrent trial calls, None for unlimited
            clock: Monotonic time source in seconds
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if half_open_max_calls is not None and half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1 when set")

        self._backend = backend
        self._failure_threshold = failure_threshold
        self._reset_timeout_seconds = reset_timeout_seconds
        self._half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._half_open_in_flight = 0

        self._lock = asyncio.Lock()

    # =========================================================================
    # Factory Methods
    # =========================================================================

    @classmethod
    def from_settings(
        cls,
        backend: BackendId,
        settings: "Settings",
        clock: Callable[[], float] = time.monotonic,
    ) -> "CircuitBreakerStateMachine":
        """
        Create a breaker with thresholds taken from application settings.

        Args:
            backend: Backend to guard
            settings: Application settings
            clock: Monotonic time source in seconds

        Returns:
            Configured CircuitBreakerStateMachine instance
        """
        return cls(
            backend=backend,
            failure_threshold=settings.circuit_breaker_failure_threshold,
            reset_timeout_seconds=settings.circuit_breaker_reset_timeout_seconds,
            half_open_max_calls=settings.circuit_breaker_half_open_max_calls,
            clock=clock,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def backend(self) -> BackendId:
        """Backend guarded by this breaker."""
        return self._backend

    @property
    def name(self) -> str:
        """Name used for metrics and logs."""
        return self._backend.key

    @property
    def failure_threshold(self) -> int:
        """Number of failures required to open the circuit."""
        return self._failure_threshold

    @property
    def reset_timeout_seconds(self) -> float:
        """Seconds to wait before attempting recovery."""
        return self._reset_timeout_seconds

    @property
    def state(self) -> CircuitBreakerState:
        """
        Current state of the circuit breaker.

        Note: This returns cached state. An OPEN circuit whose cooldown has
        elapsed only moves to HALF_OPEN through can_execute() or get_state().
        """
        return self._state

    @property
    def failure_count(self) -> int:
        """Current consecutive failure count."""
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        """Clock reading of the most recent failure."""
        return self._last_failure_time

    # =========================================================================
    # State Management
    # =========================================================================

    def _should_attempt_recovery(self) -> bool:
        if self._last_failure_time is None:
            return True
        elapsed = self._clock() - self._last_failure_time
        return elapsed >= self._reset_timeout_seconds

    def _transition(self, new_state: CircuitBreakerState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        if new_state != CircuitBreakerState.HALF_OPEN:
            self._half_open_in_flight = 0
        record_circuit_state_transition(self.name, new_state.value, old_state.value)

    def _maybe_half_open(self) -> None:
        if self._state == CircuitBreakerState.OPEN and self._should_attempt_recovery():
            self._transition(CircuitBreakerState.HALF_OPEN)

    async def get_state(self) -> CircuitBreakerState:
        """
        Get current state with the OPEN -> HALF_OPEN cooldown check applied.

        Returns:
            Current CircuitBreakerState after any transitions
        """
        async with self._lock:
            self._maybe_half_open()
            return self._state

    async def can_execute(self) -> bool:
        """
        Decide whether the guarded backend may be called now.

        CLOSED admits. OPEN admits only once the cooldown has elapsed, moving
        to HALF_OPEN. HALF_OPEN admits, up to half_open_max_calls concurrent
        trials when that bound is set.

        Returns:
            True if the caller may proceed
        """
        async with self._lock:
            self._maybe_half_open()

            if self._state == CircuitBreakerState.CLOSED:
                return True
            if self._state == CircuitBreakerState.OPEN:
                return False

            if self._half_open_max_calls is None:
                return True
            if self._half_open_in_flight >= self._half_open_max_calls:
                return False
            self._half_open_in_flight += 1
            return True

    async def release_trial(self) -> None:
        """
        Return a HALF_OPEN trial slot that was admitted but never used.

        Called when admission was granted but the backend was not actually
        called, e.g. because the rate limiter refused the request.
        """
        async with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN and self._half_open_in_flight:
                self._half_open_in_flight -= 1

    async def record_failure(self) -> None:
        """
        Record a failed call.

        Increments the failure count and opens the circuit when the threshold
        is reached or when the failure happened during HALF_OPEN.
        """
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if (
                self._failure_count >= self._failure_threshold
                or self._state == CircuitBreakerState.HALF_OPEN
            ):
                self._transition(CircuitBreakerState.OPEN)

    async def record_success(self) -> None:
        """
        Record a successful call.

        Resets the failure count and closes a HALF_OPEN circuit.
        """
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.CLOSED)

    def seconds_until_retry(self) -> float:
        """Remaining cooldown for an OPEN circuit, 0.0 otherwise."""
        if self._state != CircuitBreakerState.OPEN or self._last_failure_time is None:
            return 0.0
        remaining = self._reset_timeout_seconds - (self._clock() - self._last_failure_time)
        return max(0.0, remaining)

    def snapshot(self) -> dict[str, Any]:
        """JSON-able view of this breaker for status endpoints."""
        return {
            "backend": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self._failure_threshold,
            "seconds_until_retry": round(self.seconds_until_retry(), 3),
        }

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Execute an async function through the circuit breaker.

        Args:
            func: Async function to call
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            The result of the function call

        Raises:
            CircuitOpenError: If the circuit does not admit the call
            Exception: Any exception raised by the wrapped function
        """
        if not await self.can_execute():
            raise CircuitOpenError(
                self._backend,
                f"Circuit open for {self.name} "
                f"(threshold={self._failure_threshold}, "
                f"retry in {self.seconds_until_retry():.1f}s)",
            )

        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result
