"""
Resilience Metrics

This module provides Prometheus metrics for the circuit breakers, the
fallback chain walk, and the per-backend token-bucket limiter.

Metrics Provided:
- Circuit breaker state transitions (counter) and current state (gauge)
- Fallback chain attempts, successes and exhaustions (counters)
- Limiter decisions (counter), queue depth and available tokens (gauges)
- Limiter wait time (histogram)

Pattern: Metric names as constants, recorded through small helper functions
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Constants
# =============================================================================

METRIC_CIRCUIT_TRANSITIONS = "inference_router_circuit_breaker_state_transitions_total"
METRIC_CIRCUIT_STATE = "inference_router_circuit_breaker_state"
METRIC_FALLBACK_ATTEMPTS = "inference_router_fallback_attempts_total"
METRIC_FALLBACK_SUCCESSES = "inference_router_fallback_successes_total"
METRIC_FALLBACK_EXHAUSTED = "inference_router_fallback_exhausted_total"
METRIC_LIMITER_DECISIONS = "inference_router_rate_limit_decisions_total"
METRIC_LIMITER_QUEUE_DEPTH = "inference_router_rate_limit_queue_depth"
METRIC_LIMITER_TOKENS = "inference_router_rate_limit_tokens_available"
METRIC_LIMITER_WAIT = "inference_router_rate_limit_wait_seconds"


# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

CIRCUIT_STATE_TRANSITIONS = Counter(
    name=METRIC_CIRCUIT_TRANSITIONS,
    documentation="Total number of circuit breaker state transitions",
    labelnames=["circuit_name", "to_state", "from_state"],
)

CIRCUIT_STATE_GAUGE = Gauge(
    name=METRIC_CIRCUIT_STATE,
    documentation="Current state of circuit breaker (0=closed, 1=half_open, 2=open)",
    labelnames=["circuit_name"],
)

_STATE_TO_NUMERIC = {
    "closed": 0,
    "half_open": 1,
    "open": 2,
}


def record_circuit_state_transition(
    circuit_name: str,
    to_state: str,
    from_state: str,
) -> None:
    """
    Record a circuit breaker state transition and update the state gauge.

    Args:
        circuit_name: Name of the circuit breaker (backend key)
        to_state: State transitioning to (closed, open, half_open)
        from_state: State transitioning from (closed, open, half_open)
    """
    CIRCUIT_STATE_TRANSITIONS.labels(
        circuit_name=circuit_name,
        to_state=to_state,
        from_state=from_state,
    ).inc()

    CIRCUIT_STATE_GAUGE.labels(circuit_name=circuit_name).set(
        _STATE_TO_NUMERIC.get(to_state, 0)
    )


# =============================================================================
# Fallback Chain Metrics
# =============================================================================

FALLBACK_ATTEMPTS = Counter(
    name=METRIC_FALLBACK_ATTEMPTS,
    documentation="Chain entries considered while routing, by outcome",
    labelnames=["chain_name", "backend_name", "outcome"],
)

FALLBACK_SUCCESSES = Counter(
    name=METRIC_FALLBACK_SUCCESSES,
    documentation="Routed requests served, by backend and chain position",
    labelnames=["chain_name", "backend_name", "position"],
)

FALLBACK_EXHAUSTED = Counter(
    name=METRIC_FALLBACK_EXHAUSTED,
    documentation="Routed requests for which every chain entry failed",
    labelnames=["chain_name"],
)


def record_fallback_attempt(
    chain_name: str,
    backend_name: str,
    outcome: str,
) -> None:
    """
    Record one chain entry being considered.

    Args:
        chain_name: Name of the fallback chain
        backend_name: Backend key
        outcome: success, circuit_open, rate_limited, error, ...
    """
    FALLBACK_ATTEMPTS.labels(
        chain_name=chain_name,
        backend_name=backend_name,
        outcome=outcome,
    ).inc()


def record_fallback_success(
    chain_name: str,
    backend_name: str,
    position: int,
) -> None:
    """
    Record the backend that served a routed request.

    Args:
        chain_name: Name of the fallback chain
        backend_name: Backend key
        position: Zero-based index of the backend within the chain
    """
    FALLBACK_SUCCESSES.labels(
        chain_name=chain_name,
        backend_name=backend_name,
        position=str(position),
    ).inc()


def record_fallback_exhausted(chain_name: str) -> None:
    """Record a routed request that ran out of candidates."""
    FALLBACK_EXHAUSTED.labels(chain_name=chain_name).inc()


# =============================================================================
# Rate Limiter Metrics
# =============================================================================

LIMITER_DECISIONS = Counter(
    name=METRIC_LIMITER_DECISIONS,
    documentation="Token acquisitions by outcome",
    labelnames=["backend_name", "outcome"],
)

LIMITER_QUEUE_DEPTH = Gauge(
    name=METRIC_LIMITER_QUEUE_DEPTH,
    documentation="Waiters queued for a token",
    labelnames=["backend_name"],
)

LIMITER_TOKENS = Gauge(
    name=METRIC_LIMITER_TOKENS,
    documentation="Tokens available in the bucket after the last refill",
    labelnames=["backend_name"],
)

LIMITER_WAIT_SECONDS = Histogram(
    name=METRIC_LIMITER_WAIT,
    documentation="Time spent queued before a token was granted",
    labelnames=["backend_name"],
    buckets=(0.001, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def record_limiter_decision(backend_name: str, outcome: str, waited_ms: float) -> None:
    """
    Record a token acquisition outcome.

    Args:
        backend_name: Backend key
        outcome: granted, rejected, timeout, daily_quota_exceeded, reset
        waited_ms: Milliseconds spent waiting (0 for immediate decisions)
    """
    LIMITER_DECISIONS.labels(backend_name=backend_name, outcome=outcome).inc()
    if outcome == "granted" and waited_ms > 0:
        LIMITER_WAIT_SECONDS.labels(backend_name=backend_name).observe(waited_ms / 1000)


def record_limiter_state(backend_name: str, tokens: float, queue_depth: int) -> None:
    """Update the bucket gauges for a backend."""
    LIMITER_TOKENS.labels(backend_name=backend_name).set(tokens)
    LIMITER_QUEUE_DEPTH.labels(backend_name=backend_name).set(queue_depth)
