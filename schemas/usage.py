"""
Pydantic models for usage and pricing endpoints.
"""
from typing import Optional

from pydantic import BaseModel, Field


class UsageTotalsResponse(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    requests: int = 0


class CostBreakdownItem(BaseModel):
    model: str
    cost_usd: float
    percentage: float


class BudgetStatus(BaseModel):
    is_over_budget: bool
    current_spend_usd: float
    remaining_budget_usd: float
    percentage_used: float


class UsageResponse(BaseModel):
    """Process-wide token and cost totals."""
    total: UsageTotalsResponse
    by_model: dict[str, UsageTotalsResponse] = Field(default_factory=dict)
    cost_breakdown: list[CostBreakdownItem] = Field(default_factory=list)
    average_tokens_per_request: int = 0
    top_model: Optional[str] = None
    budget: Optional[BudgetStatus] = None


class ModelPricingResponse(BaseModel):
    model: str
    name: str
    provider: str
    cost_per_1k_tokens: float
    max_tokens: int
    features: list[str] = Field(default_factory=list)
