"""
Usage routes: token and cost accounting across all runs.
"""
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
import structlog

from api.dependencies import Tracker
from config import settings
from schemas.common import ErrorResponse
from schemas.usage import ModelPricingResponse, UsageResponse, UsageTotalsResponse
from services.pricing import MODEL_PRICING, get_model_pricing

logger = structlog.get_logger()

router = APIRouter(prefix="/usage", tags=["Usage"])


@router.get(
    "",
    response_model=UsageResponse,
    summary="Usage totals",
)
async def get_usage(
    tracker: Tracker,
    budget_usd: Optional[float] = Query(
        default=None,
        gt=0,
        description="Budget to check against; defaults to the configured limit",
    ),
):
    """Token and cost totals, per-model breakdown and budget status."""
    snapshot = tracker.export()
    stats = tracker.usage_stats()
    budget = budget_usd if budget_usd is not None else settings.budget_limit_usd

    return UsageResponse(
        total=UsageTotalsResponse(**snapshot["total"]),
        by_model={model: UsageTotalsResponse(**totals) for model, totals in snapshot["by_model"].items()},
        cost_breakdown=snapshot["cost_breakdown"],
        average_tokens_per_request=stats["average_tokens_per_request"],
        top_model=stats["top_model"],
        budget=tracker.check_budget_limit(budget) if budget is not None else None,
    )


@router.get(
    "/models",
    response_model=list[ModelPricingResponse],
    summary="Model pricing table",
)
async def list_model_pricing():
    """Static per-model pricing used for cost estimates."""
    return [pricing.to_dict() for pricing in MODEL_PRICING.values()]


@router.get(
    "/models/{model_id:path}",
    response_model=ModelPricingResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown model"}},
    summary="Pricing for one model",
)
async def get_model(model_id: str):
    """Pricing for one OpenRouter model id, e.g. openai/gpt-4o."""
    pricing = get_model_pricing(model_id)
    if not pricing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pricing for model '{model_id}'",
        )
    return pricing.to_dict()


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset usage totals",
)
async def reset_usage(tracker: Tracker):
    """Clear all recorded usage."""
    tracker.reset()
    logger.info("Usage tracker reset")
