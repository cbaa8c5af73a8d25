"""Static pricing tables and helpers for estimating provider cost."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass(frozen=True)
class _TokenPricing:
    """Per-model pricing expressed as USD per one million tokens."""

    input_per_million: float
    output_per_million: float


_ANTHROPIC_PRICING: Mapping[str, _TokenPricing] = {
    "claude-sonnet-4-20250514": _TokenPricing(input_per_million=3.0, output_per_million=15.0),
    "claude-sonnet-4-5": _TokenPricing(input_per_million=3.0, output_per_million=15.0),
    "claude-3-5-sonnet-20241022": _TokenPricing(input_per_million=3.0, output_per_million=15.0),
    "claude-3-opus-20240229": _TokenPricing(input_per_million=15.0, output_per_million=75.0),
    "claude-3-haiku-20240307": _TokenPricing(input_per_million=0.25, output_per_million=1.25),
}

_OPENAI_PRICING: Mapping[str, _TokenPricing] = {
    "gpt-4o": _TokenPricing(input_per_million=2.5, output_per_million=10.0),
    "gpt-4o-mini": _TokenPricing(input_per_million=0.15, output_per_million=0.6),
    "gpt-5": _TokenPricing(input_per_million=1.25, output_per_million=10.0),
    "gpt-5-mini": _TokenPricing(input_per_million=0.25, output_per_million=2.0),
}

_PROVIDER_PRICING: Dict[str, Mapping[str, _TokenPricing]] = {
    "anthropic": _ANTHROPIC_PRICING,
    "openai": _OPENAI_PRICING,
}

# Unknown model names are billed at the family default.
_FALLBACK_PRICING: Dict[str, _TokenPricing] = {
    "anthropic": _TokenPricing(input_per_million=3.0, output_per_million=15.0),
    "openai": _TokenPricing(input_per_million=2.5, output_per_million=10.0),
}

# USD per generated image keyed by (model, quality, size).
_IMAGE_PRICING: Mapping[tuple[str, str, str], float] = {
    ("dall-e-3", "standard", "1024x1024"): 0.04,
    ("dall-e-3", "standard", "1024x1792"): 0.08,
    ("dall-e-3", "standard", "1792x1024"): 0.08,
    ("dall-e-3", "hd", "1024x1024"): 0.08,
    ("dall-e-3", "hd", "1024x1792"): 0.12,
    ("dall-e-3", "hd", "1792x1024"): 0.12,
}

STRIPE_PERCENT_FEE = 0.029
STRIPE_FIXED_FEE_USD = 0.30


def _lookup(table: Mapping[str, _TokenPricing], model_key: str) -> _TokenPricing | None:
    if model_key in table:
        return table[model_key]
    # Dated snapshots ("gpt-4o-2024-08-06") resolve to their family row.
    for name in sorted(table, key=len, reverse=True):
        if model_key.startswith(name):
            return table[name]
    return None


def estimate_cost(
    provider: str,
    model: str,
    prompt_tokens: int | float | None,
    completion_tokens: int | float | None,
) -> float | None:
    """Approximate cost in USD for a provider response.

    Returns ``0.0`` for the mock provider and ``None`` for providers without a
    pricing table.
    """

    provider_key = (provider or "").lower()
    if provider_key == "mock":
        return 0.0

    table = _PROVIDER_PRICING.get(provider_key)
    if not table:
        return None

    pricing = _lookup(table, (model or "").lower()) or _FALLBACK_PRICING[provider_key]

    prompt_value = max(float(prompt_tokens or 0.0), 0.0)
    completion_value = max(float(completion_tokens or 0.0), 0.0)
    cost = (
        (prompt_value * pricing.input_per_million)
        + (completion_value * pricing.output_per_million)
    ) / 1_000_000.0
    return round(cost, 6)


def estimate_image_cost(model: str, *, quality: str, size: str, count: int) -> float:
    per_image = _IMAGE_PRICING.get(((model or "").lower(), quality, size))
    if per_image is None:
        per_image = 0.0 if (model or "").startswith("mock") else 0.08
    return round(per_image * max(count, 0), 6)


def stripe_fee(amount_usd: float) -> float:
    """Card processing fee booked under the ``stripe_fees`` cost center."""

    if amount_usd <= 0:
        return 0.0
    return round(amount_usd * STRIPE_PERCENT_FEE + STRIPE_FIXED_FEE_USD, 2)


__all__ = ["estimate_cost", "estimate_image_cost", "stripe_fee"]
