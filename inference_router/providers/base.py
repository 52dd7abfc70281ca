"""
Backend Adapter Interface

This module defines the abstract base class every inference backend adapter
implements. The router only ever talks to backends through this port; the
provider-specific request formatting lives behind it.

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- BackendAdapter serves as the "port"
- OpenAICompatibleAdapter and FakeBackendAdapter serve as "adapters"

Error contract:
    Adapters raise BackendAuthError for rejected credentials,
    BackendRateLimitError for remote 429s, BackendTransientError for
    timeouts, connection failures and 5xx, and plain BackendError for
    anything else. The router classifies failures by these types only.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from inference_router.models.requests import BackendQuery
from inference_router.models.responses import BackendResult, StreamChunk


class BackendAdapter(ABC):
    """
    Abstract base class for inference backend adapters.

    Attributes:
        provider: Provider name this adapter speaks for

    Example:
        >>> class MyAdapter(BackendAdapter):
        ...     provider = "mine"
        ...     async def query(self, query: BackendQuery) -> BackendResult:
        ...         return BackendResult(content="hello")
    """

    provider: str = "unknown"

    @abstractmethod
    async def query(self, query: BackendQuery) -> BackendResult:
        """
        Run one non-streaming inference call.

        Args:
            query: Prompt, model and sampling parameters

        Returns:
            BackendResult with content, usage and cost

        Raises:
            BackendAuthError: Credentials rejected
            BackendRateLimitError: Remote rate limit
            BackendTransientError: Timeout, connection failure, 5xx
            BackendError: Any other backend failure
        """
        ...

    async def stream(self, query: BackendQuery) -> AsyncIterator[StreamChunk]:
        """
        Run one streaming inference call.

        The default implementation wraps query() and yields the whole content
        as a single chunk followed by the done chunk. Adapters with native
        streaming override this.

        Yields:
            StreamChunk objects; the last one has done=True
        """
        result = await self.query(query)
        yield StreamChunk(content=result.content, index=0)
        yield StreamChunk(index=1, done=True, usage=result.usage, cost=result.cost)

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None
