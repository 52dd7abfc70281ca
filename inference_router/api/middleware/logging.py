"""
Request Logging Middleware

Logs every HTTP request with method, path, status and duration, and binds a
correlation ID for the lifetime of the request so that router log lines can
be joined to the request that caused them.

The correlation ID is taken from the X-Request-ID header when the caller
sends one, otherwise generated, and echoed back on the response.

Reference Documents:
- Sinha pp. 89-91: FastAPI middleware patterns
- Newman pp. 273-275: correlation IDs across service calls
"""

import logging
import time
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from inference_router.observability.logging import correlation_id_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Headers that should be redacted (case-insensitive substring match)
SENSITIVE_HEADER_PATTERNS = [
    "authorization",
    "api-key",
    "apikey",
    "api_key",
    "x-auth-token",
    "cookie",
]


def redact_sensitive_headers(headers: dict[str, str]) -> dict[str, str]:
    """
    Redact sensitive headers from a headers dictionary.

    Args:
        headers: Dictionary of HTTP headers

    Returns:
        Dictionary with sensitive values replaced with [REDACTED]
    """
    redacted = {}
    for key, value in headers.items():
        key_lower = key.lower()
        is_sensitive = any(pattern in key_lower for pattern in SENSITIVE_HEADER_PATTERNS)
        redacted[key] = "[REDACTED]" if is_sensitive else value
    return redacted


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    Features:
    - Binds a correlation ID for the request (X-Request-ID)
    - Logs request method, path, status code and duration
    - Redacts sensitive headers from debug logs
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        with correlation_id_context(request_id):
            logger.debug(
                f"Request: {method} {path} from {client_host} "
                f"headers={redact_sensitive_headers(dict(request.headers))}"
            )

            try:
                response = await call_next(request)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"Request failed: {method} {path} from {client_host} "
                    f"error={type(e).__name__}: {e} duration={duration_ms:.2f}ms"
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"{method} {path} {response.status_code} "
                f"from {client_host} duration={duration_ms:.2f}ms",
                extra={"status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
