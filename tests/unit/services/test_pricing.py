"""
Tests for PricingTable - per-model cost calculation.
"""

import pytest


class TestPricingLookup:
    """Exact, prefix and default resolution."""

    def test_exact_match(self) -> None:
        from inference_router.services.pricing import DEFAULT_PRICING, PricingTable

        assert PricingTable().get("gpt-4o") == DEFAULT_PRICING["gpt-4o"]

    def test_longest_prefix_wins(self) -> None:
        """A dated variant resolves to the most specific known prefix."""
        from inference_router.services.pricing import DEFAULT_PRICING, PricingTable

        assert PricingTable().get("gpt-4o-mini-2024-07-18") == DEFAULT_PRICING["gpt-4o-mini"]

    def test_unknown_model_uses_default(self) -> None:
        from inference_router.services.pricing import DEFAULT_PRICING, PricingTable

        assert PricingTable().get("mystery-model") == DEFAULT_PRICING["_default"]

    def test_custom_table_without_default(self) -> None:
        """A table missing _default still prices unknown models."""
        from decimal import Decimal

        from inference_router.services.pricing import DEFAULT_PRICING, ModelPricing, PricingTable

        table = PricingTable({"local": ModelPricing(input=Decimal("0"), output=Decimal("0"))})

        assert table.get("other") == DEFAULT_PRICING["_default"]


class TestCalculateCost:
    """Dollar cost of a call."""

    def test_paid_model(self) -> None:
        """gpt-4o: $2.50/M in, $10.00/M out."""
        from inference_router.services.pricing import PricingTable

        assert PricingTable().calculate_cost("gpt-4o", 1000, 500) == pytest.approx(0.0075)

    def test_free_tier_model(self) -> None:
        from inference_router.services.pricing import PricingTable

        assert PricingTable().calculate_cost("llama-3.1-8b-instant", 10_000, 10_000) == 0.0

    def test_zero_tokens(self) -> None:
        from inference_router.services.pricing import PricingTable

        assert PricingTable().calculate_cost("gpt-4o", 0, 0) == 0.0

    def test_negative_price_rejected(self) -> None:
        from decimal import Decimal

        from pydantic import ValidationError

        from inference_router.services.pricing import ModelPricing

        with pytest.raises(ValidationError):
            ModelPricing(input=Decimal("-1"), output=Decimal("0"))
