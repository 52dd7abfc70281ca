"""
OpenAI-Compatible HTTP Adapter

Most hosted inference providers (OpenAI, Groq, OpenRouter, Gemini's OpenAI
endpoint, local llama.cpp/vLLM servers) accept the same /chat/completions
request shape. This adapter speaks that shape over httpx and maps HTTP
failures onto the router's backend error types:

    401, 403             -> BackendAuthError
    429                  -> BackendRateLimitError (Retry-After honoured)
    408, 409, 5xx        -> BackendTransientError
    timeouts, transport  -> BackendTransientError
    other 4xx            -> BackendError

Reference Documents:
- Newman, Building Microservices: connection pools per downstream service
- OpenAI Chat Completions API, server-sent events streaming format

Pattern: Factory pattern for configured HTTP clients
"""

import json
from typing import Any, AsyncIterator, Optional

import httpx

from inference_router.core.exceptions import (
    BackendAuthError,
    BackendError,
    BackendRateLimitError,
    BackendTransientError,
)
from inference_router.models.requests import BackendQuery
from inference_router.models.responses import BackendResult, StreamChunk, TokenUsage
from inference_router.providers.base import BackendAdapter
from inference_router.services.pricing import PricingTable


# =============================================================================
# HTTP Client Factory
# =============================================================================

DEFAULT_TIMEOUT_SECONDS: float = 60.0
DEFAULT_MAX_CONNECTIONS: int = 100
DEFAULT_MAX_KEEPALIVE: int = 20
DEFAULT_CONNECT_RETRIES: int = 1

TRANSIENT_STATUS_CODES = frozenset({408, 409})
AUTH_STATUS_CODES = frozenset({401, 403})
SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def create_http_client(
    base_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    max_connections: Optional[int] = None,
    max_keepalive: Optional[int] = None,
    retries: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
) -> httpx.AsyncClient:
    """
    Create an httpx.AsyncClient with pooling and timeouts.

    Args:
        base_url: Base URL for all requests
        timeout_seconds: Connect/read/write/pool timeout
        max_connections: Maximum connections in the pool
        max_keepalive: Maximum keepalive connections
        retries: Connection-level retries performed by the transport
        headers: Extra default headers

    Returns:
        httpx.AsyncClient: Configured async HTTP client
    """
    timeout = timeout_seconds if timeout_seconds is not None else DEFAULT_TIMEOUT_SECONDS

    limits = httpx.Limits(
        max_connections=max_connections or DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=max_keepalive or DEFAULT_MAX_KEEPALIVE,
    )
    transport = httpx.AsyncHTTPTransport(
        retries=retries if retries is not None else DEFAULT_CONNECT_RETRIES,
        limits=limits,
    )

    default_headers = {
        "User-Agent": "inference-router/1.0",
        "Accept": "application/json",
    }
    if headers:
        default_headers.update(headers)

    return httpx.AsyncClient(
        base_url=base_url or "",
        timeout=httpx.Timeout(timeout),
        headers=default_headers,
        transport=transport,
    )


# =============================================================================
# Adapter
# =============================================================================


class OpenAICompatibleAdapter(BackendAdapter):
    """
    Adapter for any provider exposing an OpenAI-compatible chat API.

    Args:
        provider: Provider name used in errors and metrics
        base_url: API root, e.g. "https://api.groq.com/openai/v1"
        api_key: Bearer token, omitted from requests when None
        client: Pre-built client (tests pass one with httpx.MockTransport)
        timeout_seconds: Used when building the default client
        pricing: Price table used to compute call cost
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
        pricing: Optional[PricingTable] = None,
    ) -> None:
        self.provider = provider
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or create_http_client(
            base_url=self._base_url, timeout_seconds=timeout_seconds
        )
        self._pricing = pricing or PricingTable()

    # =========================================================================
    # Request Building
    # =========================================================================

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _payload(self, query: BackendQuery, stream: bool) -> dict[str, Any]:
        messages = []
        if query.system_prompt:
            messages.append({"role": "system", "content": query.system_prompt})
        messages.append({"role": "user", "content": query.prompt})
        payload: dict[str, Any] = {
            "model": query.model,
            "messages": messages,
            "temperature": query.temperature,
            "max_tokens": query.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _url(self) -> str:
        return f"{self._base_url}/chat/completions"

    # =========================================================================
    # Error Mapping
    # =========================================================================

    def _error_for_status(self, response: httpx.Response, model: str) -> BackendError:
        status = response.status_code
        detail = response.text[:200] if response.text else response.reason_phrase
        message = f"{self.provider}:{model} returned HTTP {status}: {detail}"

        if status in AUTH_STATUS_CODES:
            return BackendAuthError(message, self.provider, model, status)
        if status == 429:
            return BackendRateLimitError(
                message,
                self.provider,
                model,
                status,
                retry_after_seconds=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status in TRANSIENT_STATUS_CODES or status >= 500:
            return BackendTransientError(message, self.provider, model, status)
        return BackendError(message, self.provider, model, status)

    def _error_for_transport(self, error: httpx.HTTPError, model: str) -> BackendError:
        kind = "timed out" if isinstance(error, httpx.TimeoutException) else "failed"
        return BackendTransientError(
            f"{self.provider}:{model} request {kind}: {type(error).__name__}: {error}",
            self.provider,
            model,
        )

    # =========================================================================
    # BackendAdapter
    # =========================================================================

    async def query(self, query: BackendQuery) -> BackendResult:
        try:
            response = await self._client.post(
                self._url(),
                json=self._payload(query, stream=False),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise self._error_for_transport(e, query.model) from e

        if response.status_code >= 400:
            raise self._error_for_status(response, query.model)

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise BackendError(
                f"{self.provider}:{query.model} returned a malformed body: {e}",
                self.provider,
                query.model,
                response.status_code,
            ) from e

        usage = _usage_from(body.get("usage"))
        return BackendResult(
            content=content,
            usage=usage,
            cost=self._pricing.calculate_cost(
                query.model, usage.input_tokens, usage.output_tokens
            ),
        )

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamChunk]:
        index = 0
        usage = TokenUsage()
        try:
            async with self._client.stream(
                "POST",
                self._url(),
                json=self._payload(query, stream=True),
                headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise self._error_for_status(response, query.model)

                async for line in response.aiter_lines():
                    data = _sse_data(line)
                    if data is None:
                        continue
                    if data == SSE_DONE:
                        break
                    event = json.loads(data)
                    if event.get("usage"):
                        usage = _usage_from(event["usage"])
                    choices = event.get("choices") or []
                    delta = choices[0].get("delta", {}) if choices else {}
                    content = delta.get("content")
                    if content:
                        yield StreamChunk(content=content, index=index)
                        index += 1
        except httpx.HTTPError as e:
            raise self._error_for_transport(e, query.model) from e
        except json.JSONDecodeError as e:
            raise BackendTransientError(
                f"{self.provider}:{query.model} sent an unreadable stream event: {e}",
                self.provider,
                query.model,
            ) from e

        yield StreamChunk(
            index=index,
            done=True,
            usage=usage,
            cost=self._pricing.calculate_cost(
                query.model, usage.input_tokens, usage.output_tokens
            ),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Helpers
# =============================================================================


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _usage_from(raw: Optional[dict[str, Any]]) -> TokenUsage:
    if not raw:
        return TokenUsage()
    return TokenUsage.of(
        int(raw.get("prompt_tokens", 0) or 0),
        int(raw.get("completion_tokens", 0) or 0),
    )


def _sse_data(line: str) -> Optional[str]:
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    return line[len(SSE_DATA_PREFIX):].strip()
