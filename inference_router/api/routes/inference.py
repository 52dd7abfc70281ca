"""
Inference Router - Routing Endpoints

HTTP surface of the FallbackRouter.

Endpoints:
- POST /v1/inference: route a request, JSON response
- POST /v1/inference/stream: route a request, server-sent events
- GET /v1/backends: chains, circuit states, bucket levels, cache stats
- DELETE /v1/cache: drop cached responses

Error translation:
- AllBackendsExhaustedError -> 503 with the per-backend attempt list
- other router errors      -> 502 Bad Gateway

Reference Documents:
- Sinha pp. 89-91: FastAPI dependency injection
- Newman pp. 273-275: Error translation at the service edge
"""

import json
import logging
from typing import AsyncIterator, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse

from inference_router.api.deps import get_router
from inference_router.core.exceptions import (
    AllBackendsExhaustedError,
    InferenceRouterError,
)
from inference_router.models.requests import InferenceRequest
from inference_router.models.responses import InferenceResponse, StreamChunk
from inference_router.routing.router import FallbackRouter

logger = logging.getLogger(__name__)

SSE_DONE = "data: [DONE]\n\n"


# =============================================================================
# Error Translation
# =============================================================================


def _exhausted_response(error: AllBackendsExhaustedError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": error.to_dict()})


def _error_body(error: InferenceRouterError) -> dict[str, Optional[str]]:
    return {
        "code": str(getattr(error.error_code, "value", error.error_code)),
        "message": error.message,
        "provider": getattr(error, "provider", None),
        "model": getattr(error, "model", None),
    }


def _router_error_response(error: InferenceRouterError) -> JSONResponse:
    logger.error(f"Routing failed: {error.message}")
    return JSONResponse(status_code=502, content={"error": _error_body(error)})


# =============================================================================
# Router
# =============================================================================

router = APIRouter(prefix="/v1", tags=["Inference"])


@router.post("/inference", response_model=None)
async def create_inference(
    request: InferenceRequest,
    fallback_router: FallbackRouter = Depends(get_router),
) -> Union[InferenceResponse, JSONResponse]:
    """
    Route an inference request through its fallback chain.

    Returns:
        InferenceResponse: Response from the first backend that succeeded
        JSONResponse 503: Every backend in the chain failed
        JSONResponse 502: Any other routing failure
    """
    try:
        return await fallback_router.route(request)
    except AllBackendsExhaustedError as e:
        return _exhausted_response(e)
    except InferenceRouterError as e:
        return _router_error_response(e)


@router.post("/inference/stream", response_model=None)
async def stream_inference(
    request: InferenceRequest,
    fallback_router: FallbackRouter = Depends(get_router),
) -> Union[StreamingResponse, JSONResponse]:
    """
    Route an inference request and stream the response as SSE.

    The first chunk is pulled before the response starts, so a chain that
    fails before producing anything still gets a proper 503/502. A failure
    after streaming has begun is sent as a final error event.
    """
    chunks = fallback_router.stream(request)
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = None
    except AllBackendsExhaustedError as e:
        return _exhausted_response(e)
    except InferenceRouterError as e:
        return _router_error_response(e)

    return StreamingResponse(
        _sse_events(first, chunks),
        media_type="text/event-stream",
    )


async def _sse_events(
    first: Optional[StreamChunk], chunks: AsyncIterator[StreamChunk]
) -> AsyncIterator[str]:
    """
    Format router chunks as SSE 'data: ' lines, ending with 'data: [DONE]'.
    """
    if first is not None:
        yield f"data: {first.model_dump_json()}\n\n"
        try:
            async for chunk in chunks:
                yield f"data: {chunk.model_dump_json()}\n\n"
        except InferenceRouterError as e:
            logger.error(f"Stream failed: {e.message}")
            yield f"data: {json.dumps({'error': _error_body(e)})}\n\n"

    yield SSE_DONE


@router.get("/backends")
async def list_backends(
    fallback_router: FallbackRouter = Depends(get_router),
) -> dict:
    """Chains, circuit states, rate-limit buckets and cache statistics."""
    return fallback_router.snapshot()


@router.delete("/cache")
async def clear_cache(
    prefix: Optional[str] = Query(default=None, description="Key prefix within the cache namespace"),
    fallback_router: FallbackRouter = Depends(get_router),
) -> dict[str, int]:
    """Delete cached responses (all, or those under a key prefix)."""
    deleted = await fallback_router.cache.clear_all(prefix)
    return {"deleted": deleted}
