"""
Prometheus Metrics Module

Service-level metrics: HTTP traffic, response cache operations, token usage
and request cost. Resilience metrics (circuits, fallback, limiter) live in
inference_router.resilience.metrics and share the default registry.

Reference Documents:
- Newman (Building Microservices pp. 273-275): Services "expose basic
  metrics themselves" including "response times and error rates"

Pattern: Metrics collection for observability
"""

import time
from typing import Any, Callable, Optional

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    make_asgi_app,
)


# =============================================================================
# HTTP Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    name="inference_router_http_requests_total",
    documentation="Total number of HTTP requests",
    labelnames=["method", "path", "status"],
)

REQUEST_DURATION_SECONDS = Histogram(
    name="inference_router_http_request_duration_seconds",
    documentation="HTTP request duration in seconds",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

REQUESTS_IN_PROGRESS = Gauge(
    name="inference_router_http_requests_in_progress",
    documentation="Number of HTTP requests currently being processed",
    labelnames=["method"],
)

# =============================================================================
# Inference Metrics
# =============================================================================

TOKEN_USAGE_TOTAL = Counter(
    name="inference_router_tokens_total",
    documentation="Total number of tokens used",
    labelnames=["provider", "model", "type"],
)

CACHE_OPERATIONS_TOTAL = Counter(
    name="inference_router_cache_operations_total",
    documentation="Response cache operations by result (hit/miss/store/error)",
    labelnames=["result"],
)

REQUEST_COST_DOLLARS = Histogram(
    name="inference_router_request_cost_dollars",
    documentation="Routed request cost in dollars",
    labelnames=["provider", "model"],
    buckets=(0.00001, 0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

ROUTED_REQUESTS_TOTAL = Counter(
    name="inference_router_routed_requests_total",
    documentation="Routed requests by chain and result (served/cached/exhausted)",
    labelnames=["chain", "result"],
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_token_usage(provider: str, model: str, token_type: str, count: int) -> None:
    """
    Record token usage for a backend call.

    Args:
        provider: Provider that served the call
        model: Model that served the call
        token_type: "input" or "output"
        count: Number of tokens
    """
    if count <= 0:
        return
    TOKEN_USAGE_TOTAL.labels(provider=provider, model=model, type=token_type).inc(count)


def record_cache_operation(result: str) -> None:
    """Record a cache operation: hit, miss, store or error."""
    CACHE_OPERATIONS_TOTAL.labels(result=result).inc()


def record_request_cost(provider: str, model: str, cost: float) -> None:
    """Record the dollar cost of a backend call."""
    REQUEST_COST_DOLLARS.labels(provider=provider, model=model).observe(cost)


def record_routed_request(chain: str, result: str) -> None:
    """Record how a routed request ended."""
    ROUTED_REQUESTS_TOTAL.labels(chain=chain, result=result).inc()


# =============================================================================
# MetricsMiddleware ASGI Middleware
# =============================================================================


class MetricsMiddleware:
    """
    ASGI middleware for HTTP request metrics.

    Counts requests per method/path/status, records latency and tracks
    in-flight requests. The /metrics path itself is excluded.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or ["/metrics"]

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "/")

        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            await self.app(scope, receive, send)
            return

        REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()
        status_code = "500"

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = str(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            REQUESTS_TOTAL.labels(method=method, path=path, status=status_code).inc()
            REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(duration)
            REQUESTS_IN_PROGRESS.labels(method=method).dec()


# =============================================================================
# Metrics Endpoint
# =============================================================================


def get_metrics_app() -> Callable[..., Any]:
    """ASGI app serving the Prometheus exposition format at /metrics."""
    return make_asgi_app()


def generate_metrics() -> str:
    """Prometheus metrics text for the default registry."""
    return generate_latest(REGISTRY).decode("utf-8")
