"""
Tests for FakeBackendAdapter - scripted test double.

Reference:
- FakeRepository pattern (Percival & Gregory p. 157)
"""

import pytest

from inference_router.core.exceptions import BackendTransientError
from inference_router.models.requests import BackendQuery
from inference_router.providers.fake import FakeBackendAdapter


QUERY = BackendQuery(prompt="two words", model="gpt-4o")


class TestFakeQuery:
    """Non-streaming behavior."""

    @pytest.mark.asyncio
    async def test_returns_configured_content(self) -> None:
        adapter = FakeBackendAdapter(response_content="hello there")

        result = await adapter.query(QUERY)

        assert result.content == "hello there"
        assert result.usage.input_tokens == 4
        assert result.usage.output_tokens == 4
        assert result.cost > 0
        assert adapter.query_calls == [QUERY]

    @pytest.mark.asyncio
    async def test_scripted_errors_then_success(self) -> None:
        """Each scripted error is raised once, in order."""
        error = BackendTransientError("boom", "fake", "gpt-4o")
        adapter = FakeBackendAdapter(errors=[error])

        with pytest.raises(BackendTransientError):
            await adapter.query(QUERY)
        assert (await adapter.query(QUERY)).content == "Fake response for testing"

    @pytest.mark.asyncio
    async def test_error_on_every_query(self) -> None:
        adapter = FakeBackendAdapter(error_on_query=ValueError("always"))

        for _ in range(2):
            with pytest.raises(ValueError):
                await adapter.query(QUERY)


class TestFakeStream:
    """Streaming behavior."""

    @pytest.mark.asyncio
    async def test_streams_words_then_done(self) -> None:
        adapter = FakeBackendAdapter(response_content="a b c")

        chunks = [c async for c in adapter.stream(QUERY)]

        assert "".join(c.content for c in chunks) == "a b c"
        assert chunks[-1].done is True
        assert chunks[-1].usage is not None

    @pytest.mark.asyncio
    async def test_explicit_chunks(self) -> None:
        adapter = FakeBackendAdapter(stream_chunks=["Hel", "lo"])

        chunks = [c.content async for c in adapter.stream(QUERY)]

        assert chunks == ["Hel", "lo", ""]

    @pytest.mark.asyncio
    async def test_fails_mid_stream(self) -> None:
        """fail_stream_after breaks the stream after delivering content."""
        adapter = FakeBackendAdapter(
            stream_chunks=["one", "two", "three"],
            fail_stream_after=1,
            error_on_stream=BackendTransientError("cut", "fake", "gpt-4o"),
        )
        received = []

        with pytest.raises(BackendTransientError):
            async for chunk in adapter.stream(QUERY):
                received.append(chunk.content)

        assert received == ["one"]

    @pytest.mark.asyncio
    async def test_aclose_marks_closed(self) -> None:
        adapter = FakeBackendAdapter()

        await adapter.aclose()

        assert adapter.closed is True
