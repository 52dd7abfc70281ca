"""
Domain Models - Backend identity and static backend configuration.

A backend is one (provider, model) pair. Everything the router keeps per
backend (token bucket, circuit state, metrics labels) is keyed by BackendId.

Pattern: Value objects as frozen Pydantic models (hashable, usable as dict keys)
"""

from pydantic import BaseModel, Field


class BackendId(BaseModel):
    """
    Identity of a single inference backend.

    Attributes:
        provider: Provider name (e.g., "groq", "openai")
        model: Model identifier at that provider
    """

    provider: str = Field(..., min_length=1, description="Provider name")
    model: str = Field(..., min_length=1, description="Model identifier")

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        """Stable string form used for metric labels and log fields."""
        return f"{self.provider}:{self.model}"

    @classmethod
    def parse(cls, value: str) -> "BackendId":
        """
        Parse a "provider:model" string.

        Only the first colon separates provider from model, so model names
        containing colons survive.

        Raises:
            ValueError: If the string has no provider part
        """
        provider, sep, model = value.partition(":")
        if not sep or not provider or not model:
            raise ValueError(f"Backend must look like 'provider:model', got {value!r}")
        return cls(provider=provider, model=model)

    def __str__(self) -> str:
        return self.key


class RateLimitConfig(BaseModel):
    """
    Static throughput limits for one backend.

    The bucket refills at requests_per_second and holds at most
    burst_capacity tokens. tokens_per_minute is informational.
    """

    requests_per_second: float = Field(..., gt=0, description="Sustained refill rate")
    burst_capacity: int = Field(..., ge=1, description="Maximum stored tokens")
    tokens_per_minute: int = Field(default=0, ge=0, description="Provider TPM quota")
    requests_per_day: int = Field(..., ge=1, description="Daily request quota")

    model_config = {"frozen": True}


class BackendAttempt(BaseModel):
    """
    Outcome of trying one chain entry during a routed request.

    Attributes:
        backend: The backend that was considered
        reason: Human-readable failure reason
        error_type: Exception class name or a short outcome tag
    """

    backend: BackendId
    reason: str
    error_type: str

    model_config = {"frozen": True}
