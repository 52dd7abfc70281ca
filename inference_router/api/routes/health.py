"""
Health Router

Liveness and readiness endpoints.

Reference Documents:
- Building Microservices (Newman) pp. 273-275: Service metrics and synthetic monitoring
- Building Python Microservices with FastAPI (Sinha) pp. 89-91: Dependency injection patterns

Readiness rules:
- The response cache is optional. When it is configured, it must answer PING.
- Open circuits are reported but never fail readiness: the router can still
  serve through the rest of the chain.
"""

import logging

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from inference_router.api.deps import get_router
from inference_router.resilience.circuit_breaker_state_machine import CircuitBreakerState
from inference_router.routing.router import FallbackRouter

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    checks: dict[str, bool]
    open_circuits: list[str] = []


# =============================================================================
# Router
# =============================================================================

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving HTTP."""
    return HealthResponse(status="healthy", version=APP_VERSION)


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    response: Response,
    fallback_router: FallbackRouter = Depends(get_router),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Returns 503 when a configured dependency is unavailable.

    Args:
        response: FastAPI response object for setting status code
        fallback_router: Injected router

    Returns:
        ReadinessResponse: Readiness status with dependency checks
    """
    checks: dict[str, bool] = {}
    if fallback_router.cache.enabled:
        checks["cache"] = await fallback_router.cache.ping()

    open_circuits = [
        circuit["backend"]
        for circuit in fallback_router.breakers.snapshot()
        if circuit["state"] == CircuitBreakerState.OPEN.value
    ]

    all_healthy = all(checks.values())
    if not all_healthy:
        logger.warning(f"Readiness check failed: {checks}")
        response.status_code = 503

    return ReadinessResponse(
        status="ready" if all_healthy else "not_ready",
        checks=checks,
        open_circuits=open_circuits,
    )
