"""
Observability Package

This package provides observability infrastructure:
- Structured JSON logging with correlation IDs (structlog)
- Prometheus metrics for HTTP requests, tokens, cost and cache
"""

from inference_router.observability.logging import (
    clear_correlation_id,
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from inference_router.observability.metrics import (
    MetricsMiddleware,
    generate_metrics,
    get_metrics_app,
    record_cache_operation,
    record_request_cost,
    record_routed_request,
    record_token_usage,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Metrics
    "MetricsMiddleware",
    "get_metrics_app",
    "generate_metrics",
    "record_cache_operation",
    "record_request_cost",
    "record_routed_request",
    "record_token_usage",
]
