"""
Tests for domain, request and response models.
"""

import pytest
from pydantic import ValidationError


class TestBackendId:
    """BackendId is a hashable (provider, model) value object."""

    def test_key(self) -> None:
        """key is provider:model."""
        from inference_router.models.domain import BackendId

        backend = BackendId(provider="groq", model="llama-3.1-8b-instant")

        assert backend.key == "groq:llama-3.1-8b-instant"
        assert str(backend) == backend.key

    def test_hashable_and_equal_by_value(self) -> None:
        """Equal ids collapse to one dict key."""
        from inference_router.models.domain import BackendId

        a = BackendId(provider="groq", model="m")
        b = BackendId(provider="groq", model="m")

        assert a == b
        assert len({a: 1, b: 2}) == 1

    def test_frozen(self) -> None:
        """Fields cannot be reassigned."""
        from inference_router.models.domain import BackendId

        backend = BackendId(provider="groq", model="m")

        with pytest.raises(ValidationError):
            backend.model = "other"

    def test_parse_splits_on_first_colon(self) -> None:
        """Model names containing colons survive parsing."""
        from inference_router.models.domain import BackendId

        backend = BackendId.parse("ollama:llama3:70b")

        assert backend.provider == "ollama"
        assert backend.model == "llama3:70b"

    @pytest.mark.parametrize("value", ["groq", ":model", "groq:"])
    def test_parse_rejects_malformed(self, value: str) -> None:
        """Strings without both parts are rejected."""
        from inference_router.models.domain import BackendId

        with pytest.raises(ValueError):
            BackendId.parse(value)


class TestRateLimitConfig:
    """RateLimitConfig validation."""

    def test_rate_must_be_positive(self) -> None:
        """A zero refill rate would never refill."""
        from inference_router.models.domain import RateLimitConfig

        with pytest.raises(ValidationError):
            RateLimitConfig(requests_per_second=0, burst_capacity=1, requests_per_day=1)

    def test_fractional_rate_allowed(self) -> None:
        """Free tiers refill slower than one token per second."""
        from inference_router.models.domain import RateLimitConfig

        config = RateLimitConfig(requests_per_second=0.5, burst_capacity=10, requests_per_day=14_400)

        assert config.requests_per_second == 0.5
        assert config.tokens_per_minute == 0


class TestInferenceRequest:
    """InferenceRequest defaults and validation."""

    def test_defaults(self) -> None:
        """Defaults route as a balanced chat request that may use the cache."""
        from inference_router.models.requests import InferenceRequest

        request = InferenceRequest(prompt="hi")

        assert request.use_case == "chat"
        assert request.priority == "balanced"
        assert request.temperature == 0.7
        assert request.max_tokens == 1000
        assert request.queue_priority == 0
        assert request.use_cache is True

    def test_empty_prompt_rejected(self) -> None:
        """Empty prompts are invalid."""
        from inference_router.models.requests import InferenceRequest

        with pytest.raises(ValidationError):
            InferenceRequest(prompt="")

    def test_temperature_bounds(self) -> None:
        """Temperature must be within [0, 2]."""
        from inference_router.models.requests import InferenceRequest

        with pytest.raises(ValidationError):
            InferenceRequest(prompt="hi", temperature=2.5)

    def test_backend_query_from_request(self) -> None:
        """BackendQuery carries the request parameters and the chosen model."""
        from inference_router.models.requests import BackendQuery, InferenceRequest

        request = InferenceRequest(prompt="hi", system_prompt="be brief", max_tokens=50)

        query = BackendQuery.from_request(request, "gpt-4o")

        assert query.model == "gpt-4o"
        assert query.prompt == "hi"
        assert query.system_prompt == "be brief"
        assert query.max_tokens == 50


class TestResponses:
    """Response model helpers."""

    def test_token_usage_of_fills_total(self) -> None:
        """TokenUsage.of() sums input and output."""
        from inference_router.models.responses import TokenUsage

        usage = TokenUsage.of(10, 5)

        assert usage.total_tokens == 15

    def test_inference_response_flags_default_false(self) -> None:
        """Fresh responses are neither cached nor fallbacks."""
        from inference_router.models.responses import InferenceResponse

        response = InferenceResponse(content="x", provider="groq", model="m")

        assert response.from_cache is False
        assert response.used_fallback is False
