from .openrouter import (
    CompletionOptions,
    CompletionResult,
    OpenRouterClient,
    TokenUsage,
)
from .pricing import MODEL_PRICING, ModelPricing, estimate_cost, estimate_tokens
from .usage import UsageRecord, UsageTotals, UsageTracker

__all__ = [
    "CompletionOptions",
    "CompletionResult",
    "OpenRouterClient",
    "TokenUsage",
    "MODEL_PRICING",
    "ModelPricing",
    "estimate_cost",
    "estimate_tokens",
    "UsageRecord",
    "UsageTotals",
    "UsageTracker",
]
