"""
Request Models - Inference router input types.

InferenceRequest is what callers hand to the router. BackendQuery is what the
router hands to a single backend adapter once a chain entry is chosen.

Pattern: Pydantic models with validation (Sinha pp. 193-195)
"""

from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_USE_CASE = "chat"
DEFAULT_PRIORITY = "balanced"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


class InferenceRequest(BaseModel):
    """
    A request to be routed across a fallback chain.

    Attributes:
        prompt: User prompt text
        system_prompt: Optional system instruction passed to the backend
        use_case: Request class used to pick a chain (chat, code, reasoning, ...)
        priority: Routing preference within the use case (speed, cost, quality, ...)
        temperature: Sampling temperature
        max_tokens: Completion token limit
        queue_priority: Urgency for the rate-limit wait queue (higher first)
        use_cache: Whether the response cache may serve or store this request
    """

    prompt: str = Field(..., min_length=1, description="User prompt")
    system_prompt: Optional[str] = Field(default=None, description="System instruction")
    use_case: str = Field(default=DEFAULT_USE_CASE, description="Request class")
    priority: str = Field(default=DEFAULT_PRIORITY, description="Routing preference")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1)
    queue_priority: int = Field(default=0, description="Wait-queue urgency")
    use_cache: bool = Field(default=True, description="Allow cache read/write")


class BackendQuery(BaseModel):
    """
    A single call to one backend adapter.

    Built by the router from an InferenceRequest and the chosen chain entry.
    """

    prompt: str
    system_prompt: Optional[str] = None
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS

    @classmethod
    def from_request(cls, request: InferenceRequest, model: str) -> "BackendQuery":
        """Build the adapter-facing query for one chain entry."""
        return cls(
            prompt=request.prompt,
            system_prompt=request.system_prompt,
            model=model,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )
