"""
Tests for OpenAICompatibleAdapter - httpx adapter for /chat/completions APIs.

Uses httpx.MockTransport so no network traffic leaves the test.

This module tests:
- Request shape (messages, model, sampling, auth header)
- Response parsing, usage and cost
- HTTP status and transport error mapping
- SSE stream parsing
- Client ownership on aclose()
"""

import json
from typing import Callable

import httpx
import pytest

from inference_router.core.exceptions import (
    BackendAuthError,
    BackendError,
    BackendRateLimitError,
    BackendTransientError,
)
from inference_router.models.requests import BackendQuery


BASE_URL = "https://api.example.test/v1"
QUERY = BackendQuery(prompt="Hello", system_prompt="Be brief", model="gpt-4o", max_tokens=50)


def completion_body(content: str = "Hi!", prompt_tokens: int = 10, completion_tokens: int = 5) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


@pytest.fixture
def make_adapter():
    """Build an adapter whose client routes every request to a handler."""
    from inference_router.providers.http import OpenAICompatibleAdapter

    def _make(handler: Callable[[httpx.Request], httpx.Response], api_key: str = "sk-test"):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return OpenAICompatibleAdapter("acme", BASE_URL, api_key=api_key, client=client)

    return _make


# =============================================================================
# Query
# =============================================================================


class TestQuery:
    """Non-streaming calls."""

    @pytest.mark.asyncio
    async def test_request_shape(self, make_adapter) -> None:
        """Posts an OpenAI-style payload with a bearer token."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=completion_body())

        await make_adapter(handler).query(QUERY)

        [request] = seen
        payload = json.loads(request.content)
        assert str(request.url) == f"{BASE_URL}/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert payload["model"] == "gpt-4o"
        assert payload["max_tokens"] == 50
        assert payload["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hello"},
        ]
        assert "stream" not in payload

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self, make_adapter) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=completion_body())

        await make_adapter(handler, api_key=None).query(QUERY)

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_parses_content_usage_and_cost(self, make_adapter) -> None:
        adapter = make_adapter(
            lambda request: httpx.Response(
                200, json=completion_body("Paris", prompt_tokens=1000, completion_tokens=500)
            )
        )

        result = await adapter.query(QUERY)

        assert result.content == "Paris"
        assert result.usage.total_tokens == 1500
        assert result.cost == pytest.approx(0.0075)

    @pytest.mark.asyncio
    async def test_malformed_body(self, make_adapter) -> None:
        """A 200 without choices is a plain BackendError."""
        adapter = make_adapter(lambda request: httpx.Response(200, json={"oops": True}))

        with pytest.raises(BackendError) as exc_info:
            await adapter.query(QUERY)
        assert not isinstance(exc_info.value, BackendTransientError)
        assert "malformed" in exc_info.value.message


# =============================================================================
# Error Mapping
# =============================================================================


class TestErrorMapping:
    """HTTP failures map onto the backend error types."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, BackendAuthError),
            (403, BackendAuthError),
            (429, BackendRateLimitError),
            (408, BackendTransientError),
            (500, BackendTransientError),
            (503, BackendTransientError),
        ],
    )
    async def test_status_codes(self, make_adapter, status, expected) -> None:
        adapter = make_adapter(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(expected) as exc_info:
            await adapter.query(QUERY)
        assert exc_info.value.status_code == status
        assert exc_info.value.provider == "acme"
        assert exc_info.value.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_other_client_error(self, make_adapter) -> None:
        """A 400 is not transient, auth or rate limit."""
        adapter = make_adapter(lambda request: httpx.Response(400, text="bad request"))

        with pytest.raises(BackendError) as exc_info:
            await adapter.query(QUERY)
        assert type(exc_info.value) is BackendError

    @pytest.mark.asyncio
    async def test_retry_after_parsed(self, make_adapter) -> None:
        adapter = make_adapter(
            lambda request: httpx.Response(429, headers={"Retry-After": "7"}, text="slow down")
        )

        with pytest.raises(BackendRateLimitError) as exc_info:
            await adapter.query(QUERY)
        assert exc_info.value.retry_after_seconds == 7.0

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, make_adapter) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendTransientError, match="failed"):
            await make_adapter(handler).query(QUERY)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, make_adapter) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(BackendTransientError, match="timed out"):
            await make_adapter(handler).query(QUERY)


class TestRetryAfterParsing:
    """Retry-After header values."""

    @pytest.mark.parametrize(
        "value,expected",
        [(None, None), ("3", 3.0), ("1.5", 1.5), ("-2", 0.0), ("Wed, 21 Oct 2015 07:28:00 GMT", None)],
    )
    def test_values(self, value, expected) -> None:
        from inference_router.providers.http import _parse_retry_after

        assert _parse_retry_after(value) == expected


# =============================================================================
# Streaming
# =============================================================================


def sse_body(*events: str) -> bytes:
    return "".join(f"data: {event}\n\n" for event in events).encode()


class TestStream:
    """Server-sent events parsing."""

    @pytest.mark.asyncio
    async def test_streams_deltas_then_done(self, make_adapter) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            body = sse_body(
                json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
                json.dumps({"choices": [{"delta": {"content": "Hel"}}]}),
                json.dumps({"choices": [{"delta": {"content": "lo"}}]}),
                json.dumps({"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2}}),
                "[DONE]",
            )
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        chunks = [c async for c in make_adapter(handler).stream(QUERY)]

        assert seen[0]["stream"] is True
        assert [c.content for c in chunks] == ["Hel", "lo", ""]
        assert [c.index for c in chunks] == [0, 1, 2]
        assert chunks[-1].done is True
        assert chunks[-1].usage.total_tokens == 5

    @pytest.mark.asyncio
    async def test_stream_error_status(self, make_adapter) -> None:
        adapter = make_adapter(lambda request: httpx.Response(503, text="overloaded"))

        with pytest.raises(BackendTransientError):
            async for _ in adapter.stream(QUERY):
                pass

    @pytest.mark.asyncio
    async def test_unreadable_event_is_transient(self, make_adapter) -> None:
        adapter = make_adapter(
            lambda request: httpx.Response(200, content=sse_body("{broken"))
        )

        with pytest.raises(BackendTransientError, match="unreadable"):
            async for _ in adapter.stream(QUERY):
                pass


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Client ownership."""

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, make_adapter) -> None:
        adapter = make_adapter(lambda request: httpx.Response(200, json=completion_body()))

        await adapter.aclose()

        assert adapter._client.is_closed is False

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        from inference_router.providers.http import OpenAICompatibleAdapter

        adapter = OpenAICompatibleAdapter("acme", BASE_URL)

        await adapter.aclose()

        assert adapter._client.is_closed is True

    def test_create_http_client_defaults(self) -> None:
        from inference_router.providers.http import create_http_client

        client = create_http_client(base_url=BASE_URL, timeout_seconds=5.0)

        assert client.timeout.read == 5.0
        assert client.headers["User-Agent"] == "inference-router/1.0"
