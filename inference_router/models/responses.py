"""
Response Models - Inference router output types.

Pattern: Pydantic models with validation (Sinha pp. 193-195)
"""

from typing import Optional

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token counts reported by a backend."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        """Build usage with total_tokens filled in."""
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )


class BackendResult(BaseModel):
    """
    What a backend adapter returns for one successful query.

    Attributes:
        content: Generated text
        usage: Token accounting
        cost: Cost of the call in dollars
    """

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = Field(default=0.0, ge=0.0)


class InferenceResponse(BaseModel):
    """
    Routed response returned to callers and stored in the cache.

    Attributes:
        content: Generated text
        provider: Provider that produced the content
        model: Model that produced the content
        usage: Token accounting
        cost: Cost in dollars
        latency_ms: Wall time spent in the router for this request
        from_cache: True when served from the response cache
        used_fallback: True when a backend other than the chain's first served it
        chain: Name of the chain that was walked
    """

    content: str
    provider: str
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = Field(default=0.0, ge=0.0)
    latency_ms: float = Field(default=0.0, ge=0.0)
    from_cache: bool = False
    used_fallback: bool = False
    chain: Optional[str] = None


class StreamChunk(BaseModel):
    """
    One piece of a streamed response.

    The final chunk of a stream has done=True and empty content. Adapters may
    attach usage and cost to it; the router always attaches provider and model.
    """

    content: str = ""
    index: int = Field(default=0, ge=0)
    done: bool = False
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None
    cost: Optional[float] = None
    from_cache: bool = False
