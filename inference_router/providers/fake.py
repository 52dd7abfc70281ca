"""
Fake Backend Adapter - Test Double Implementation

A FakeBackendAdapter implements the real BackendAdapter interface without
network calls. It is a proper implementation with deterministic behavior,
not a mock, and it can be scripted to fail.

Uses:
- Unit and integration tests of the router
- Local development without provider endpoints or API keys

Reference:
- FakeRepository pattern (Percival & Gregory p. 157)
"""

import asyncio
from typing import AsyncIterator, Optional, Sequence

from inference_router.models.requests import BackendQuery
from inference_router.models.responses import BackendResult, StreamChunk, TokenUsage
from inference_router.providers.base import BackendAdapter
from inference_router.services.pricing import PricingTable


class FakeBackendAdapter(BackendAdapter):
    """
    Fake backend for testing and local development.

    Attributes:
        provider: Provider name reported by this adapter
        response_content: Content returned on success
        errors: Exceptions raised by successive calls, one per call, before
            calls start succeeding
        error_on_query: Exception raised by every call
        delay_seconds: Simulated latency per call
        stream_chunks: Content pieces yielded by stream()
        fail_stream_after: Raise error_on_stream after this many chunks

    Example:
        >>> adapter = FakeBackendAdapter(provider="groq", errors=[BackendTransientError(...)])
        >>> await adapter.query(query)   # raises the scripted error
        >>> await adapter.query(query)   # succeeds
    """

    def __init__(
        self,
        provider: str = "fake",
        response_content: str = "Fake response for testing",
        errors: Optional[Sequence[Exception]] = None,
        error_on_query: Optional[Exception] = None,
        delay_seconds: float = 0.0,
        stream_chunks: Optional[Sequence[str]] = None,
        fail_stream_after: Optional[int] = None,
        error_on_stream: Optional[Exception] = None,
        pricing: Optional[PricingTable] = None,
    ) -> None:
        self.provider = provider
        self.response_content = response_content
        self.errors = list(errors or [])
        self.error_on_query = error_on_query
        self.delay_seconds = delay_seconds
        self.stream_chunks = list(stream_chunks) if stream_chunks is not None else None
        self.fail_stream_after = fail_stream_after
        self.error_on_stream = error_on_stream
        self.pricing = pricing or PricingTable()

        self.query_calls: list[BackendQuery] = []
        self.stream_calls: list[BackendQuery] = []
        self.closed = False

    def _next_error(self) -> Optional[Exception]:
        if self.error_on_query is not None:
            return self.error_on_query
        if self.errors:
            return self.errors.pop(0)
        return None

    def _usage_for(self, query: BackendQuery, content: str) -> TokenUsage:
        # ~2 tokens per word
        input_tokens = len(query.prompt.split()) * 2
        output_tokens = len(content.split()) * 2
        return TokenUsage.of(input_tokens, output_tokens)

    async def query(self, query: BackendQuery) -> BackendResult:
        self.query_calls.append(query)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        error = self._next_error()
        if error is not None:
            raise error

        usage = self._usage_for(query, self.response_content)
        return BackendResult(
            content=self.response_content,
            usage=usage,
            cost=self.pricing.calculate_cost(
                query.model, usage.input_tokens, usage.output_tokens
            ),
        )

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamChunk]:
        self.stream_calls.append(query)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        error = self._next_error()
        if error is not None:
            raise error

        pieces = self.stream_chunks or self.response_content.split(" ")
        for index, piece in enumerate(pieces):
            if self.fail_stream_after is not None and index >= self.fail_stream_after:
                raise self.error_on_stream or RuntimeError("stream broken")
            content = piece if self.stream_chunks else (piece if index == 0 else f" {piece}")
            yield StreamChunk(content=content, index=index)

        usage = self._usage_for(query, " ".join(pieces))
        yield StreamChunk(
            index=len(pieces),
            done=True,
            usage=usage,
            cost=self.pricing.calculate_cost(
                query.model, usage.input_tokens, usage.output_tokens
            ),
        )

    async def aclose(self) -> None:
        self.closed = True
