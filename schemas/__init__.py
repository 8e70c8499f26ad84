from .common import ErrorResponse, HealthResponse
from .generation import (
    StartGenerationRequest,
    GenerationRunResponse,
    GenerationRunList,
    StepResultResponse,
    RunLogResponse,
    RunTotals,
    TokenUsageResponse,
)
from .usage import (
    UsageResponse,
    UsageTotalsResponse,
    CostBreakdownItem,
    BudgetStatus,
    ModelPricingResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "StartGenerationRequest",
    "GenerationRunResponse",
    "GenerationRunList",
    "StepResultResponse",
    "RunLogResponse",
    "RunTotals",
    "TokenUsageResponse",
    "UsageResponse",
    "UsageTotalsResponse",
    "CostBreakdownItem",
    "BudgetStatus",
    "ModelPricingResponse",
]
