"""
Model Pricing

Per-model token prices used to attach a cost to every routed response.
Prices are dollars per 1M tokens (input/output). Lookup is exact model name,
then the longest matching prefix, then "_default".

Pattern: Decimal arithmetic for money, float at the boundary
"""

from decimal import Decimal
from typing import Mapping, Optional

from pydantic import BaseModel, Field


class ModelPricing(BaseModel):
    """Dollar price per 1M tokens."""

    input: Decimal = Field(..., ge=0, description="Input price per 1M tokens")
    output: Decimal = Field(..., ge=0, description="Output price per 1M tokens")

    model_config = {"frozen": True}


def _price(input_price: str, output_price: str) -> ModelPricing:
    return ModelPricing(input=Decimal(input_price), output=Decimal(output_price))


FREE = _price("0", "0")

DEFAULT_PRICING: dict[str, ModelPricing] = {
    # Gemini
    "gemini-2.5-flash-lite": _price("0.02", "0.08"),
    "gemini-2.5-flash": _price("0.075", "0.30"),
    "gemini-1.5-flash": _price("0.075", "0.30"),
    "gemini-1.5-pro": _price("1.25", "5.00"),
    # OpenRouter
    "meta-llama/llama-3-70b": _price("0.52", "0.75"),
    "anthropic/claude-3-sonnet": _price("3.00", "15.00"),
    # Groq (free tier)
    "llama-3.1-70b-versatile": FREE,
    "llama-3.1-8b-instant": FREE,
    "mixtral-8x7b-32768": FREE,
    # OpenAI
    "gpt-4o-mini": _price("0.15", "0.60"),
    "gpt-4o": _price("2.50", "10.00"),
    "gpt-4-turbo": _price("10.00", "30.00"),
    # Anthropic
    "claude-3-5-sonnet-20241022": _price("3.00", "15.00"),
    "claude-3-5-haiku-20241022": _price("0.80", "4.00"),
    "claude-3-opus-20240229": _price("15.00", "75.00"),
    # Default fallback
    "_default": _price("1.00", "2.00"),
}

_PER_MILLION = Decimal("1000000")


class PricingTable:
    """
    Resolves model names to prices and computes call cost.

    Example:
        >>> PricingTable().calculate_cost("gpt-4o", 1000, 500)
        0.0075
    """

    def __init__(self, pricing: Optional[Mapping[str, ModelPricing]] = None) -> None:
        self._pricing = dict(pricing if pricing is not None else DEFAULT_PRICING)

    def get(self, model: str) -> ModelPricing:
        """Exact match, then longest prefix, then the default price."""
        exact = self._pricing.get(model)
        if exact is not None:
            return exact

        prefixes = [
            name for name in self._pricing
            if name != "_default" and model.startswith(name)
        ]
        if prefixes:
            return self._pricing[max(prefixes, key=len)]

        return self._pricing.get("_default", DEFAULT_PRICING["_default"])

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in dollars of one call."""
        pricing = self.get(model)
        input_cost = Decimal(input_tokens) / _PER_MILLION * pricing.input
        output_cost = Decimal(output_tokens) / _PER_MILLION * pricing.output
        return float(input_cost + output_cost)
