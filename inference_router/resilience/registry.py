"""
Circuit Breaker Registry

Owns one CircuitBreakerStateMachine per backend, created lazily on first
reference. The registry is an explicit object handed to the router, so
separate routers (and separate tests) never share circuit state.
"""

import time
from typing import Any, Callable, Optional

from inference_router.models.domain import BackendId
from inference_router.resilience.circuit_breaker_state_machine import (
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_RESET_TIMEOUT_SECONDS,
    CircuitBreakerStateMachine,
)


class CircuitBreakerRegistry:
    """
    Lazily created circuit breakers keyed by BackendId.

    All breakers share the registry's threshold, cooldown and clock.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_seconds: float = DEFAULT_RESET_TIMEOUT_SECONDS,
        half_open_max_calls: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._reset_timeout_seconds = reset_timeout_seconds
        self._half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._breakers: dict[BackendId, CircuitBreakerStateMachine] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CircuitBreakerRegistry":
        """Create a registry configured from application settings."""
        return cls(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            reset_timeout_seconds=settings.circuit_breaker_reset_timeout_seconds,
            half_open_max_calls=settings.circuit_breaker_half_open_max_calls,
            clock=clock,
        )

    def get(self, backend: BackendId) -> CircuitBreakerStateMachine:
        """Return the breaker for a backend, creating it on first use."""
        breaker = self._breakers.get(backend)
        if breaker is None:
            breaker = CircuitBreakerStateMachine(
                backend=backend,
                failure_threshold=self._failure_threshold,
                reset_timeout_seconds=self._reset_timeout_seconds,
                half_open_max_calls=self._half_open_max_calls,
                clock=self._clock,
            )
            self._breakers[backend] = breaker
        return breaker

    def __contains__(self, backend: object) -> bool:
        return backend in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def snapshot(self) -> list[dict[str, Any]]:
        """State of every breaker created so far, sorted by backend key."""
        return [
            self._breakers[backend].snapshot()
            for backend in sorted(self._breakers, key=lambda b: b.key)
        ]
