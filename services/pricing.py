"""
Static per-model pricing table (OpenRouter model ids).

Read-only process-wide configuration; safe for concurrent reads.
"""
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class ModelPricing:
    model: str
    name: str
    provider: str
    cost_per_1k_tokens: Decimal
    max_tokens: int
    features: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "name": self.name,
            "provider": self.provider,
            "cost_per_1k_tokens": float(self.cost_per_1k_tokens),
            "max_tokens": self.max_tokens,
            "features": list(self.features),
        }


MODEL_PRICING: Mapping[str, ModelPricing] = MappingProxyType({
    pricing.model: pricing
    for pricing in (
        ModelPricing("openai/gpt-4o", "GPT-4o", "OpenAI", Decimal("0.015"), 128000,
                     ("vision", "function-calling", "json-mode")),
        ModelPricing("openai/gpt-4o-mini", "GPT-4o Mini", "OpenAI", Decimal("0.0005"), 128000,
                     ("vision", "function-calling", "json-mode")),
        ModelPricing("openai/gpt-4-turbo", "GPT-4 Turbo", "OpenAI", Decimal("0.01"), 128000,
                     ("vision", "function-calling")),
        ModelPricing("openai/gpt-3.5-turbo", "GPT-3.5 Turbo", "OpenAI", Decimal("0.001"), 16000,
                     ("fast",)),
        ModelPricing("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "Anthropic", Decimal("0.003"), 200000,
                     ("vision", "long-context")),
        ModelPricing("anthropic/claude-3-opus", "Claude 3 Opus", "Anthropic", Decimal("0.015"), 200000,
                     ("vision", "long-context")),
        ModelPricing("anthropic/claude-3-haiku", "Claude 3 Haiku", "Anthropic", Decimal("0.00025"), 200000,
                     ("vision", "fast")),
        ModelPricing("google/gemini-pro", "Gemini Pro", "Google", Decimal("0.0005"), 32000,
                     ("fast",)),
        ModelPricing("deepseek/deepseek-r1-0528:free", "DeepSeek R1", "DeepSeek", Decimal("0"), 64000,
                     ("reasoning", "long-context")),
        ModelPricing("deepseek/deepseek-r1-distill-llama-70b", "DeepSeek R1 Distill", "DeepSeek",
                     Decimal("0.00014"), 32000, ("fast", "cost-effective")),
    )
})


def get_model_pricing(model: str) -> Optional[ModelPricing]:
    return MODEL_PRICING.get(model)


def rate_for(model: str) -> Decimal:
    """Cost per 1k tokens. Unknown models cost nothing and log a warning."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("No pricing for model, cost recorded as zero", model=model)
        return Decimal("0")
    return pricing.cost_per_1k_tokens


def estimate_cost(model: str, total_tokens: int) -> Decimal:
    return Decimal(total_tokens) / Decimal(1000) * rate_for(model)


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token for English)."""
    return -(-len(text) // 4)
