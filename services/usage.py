"""
Process-wide token and cost accounting.

The tracker is the only mutable state shared between concurrent pipeline
runs. Writers only append immutable UsageRecords to a deque (atomic in
CPython); every aggregate is computed from a snapshot on read, so there is
no read-modify-write on shared counters.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog

from services.pricing import MODEL_PRICING

logger = structlog.get_logger()


@dataclass(frozen=True)
class UsageRecord:
    """One completion's token usage."""
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_usd: Decimal
    success: bool = True
    step: Optional[str] = None
    run_id: Optional[str] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class UsageTotals:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Decimal = Decimal("0")
    requests: int = 0

    def add(self, record: UsageRecord) -> None:
        self.prompt_tokens += record.prompt_tokens
        self.completion_tokens += record.completion_tokens
        self.total_tokens += record.total_tokens
        self.cost_usd += record.cost_usd
        self.requests += 1

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": float(self.cost_usd),
            "requests": self.requests,
        }


class UsageTracker:
    """Append-only usage log with on-read aggregation."""

    def __init__(self):
        self._records: deque[UsageRecord] = deque()

    def record(self, record: UsageRecord) -> None:
        self._records.append(record)
        logger.debug(
            "Usage recorded",
            model=record.model,
            step=record.step,
            run_id=record.run_id,
            total_tokens=record.total_tokens,
            cost_usd=float(record.cost_usd),
        )

    def snapshot(self) -> list[UsageRecord]:
        return list(self._records)

    def _by_model(self, records: list[UsageRecord]) -> dict[str, UsageTotals]:
        by_model: dict[str, UsageTotals] = {}
        for record in records:
            by_model.setdefault(record.model, UsageTotals()).add(record)
        return by_model

    def get_total(self) -> UsageTotals:
        totals = UsageTotals()
        for record in self.snapshot():
            totals.add(record)
        return totals

    def get_by_model(self, model: str) -> Optional[UsageTotals]:
        return self._by_model(self.snapshot()).get(model)

    def cost_breakdown(self) -> list[dict]:
        """Per-model spend, most expensive first."""
        by_model = self._by_model(self.snapshot())
        total_cost = sum((t.cost_usd for t in by_model.values()), Decimal("0"))
        breakdown = [
            {
                "model": model,
                "cost_usd": float(totals.cost_usd),
                "percentage": float(totals.cost_usd / total_cost * 100) if total_cost > 0 else 0.0,
            }
            for model, totals in by_model.items()
            if totals.cost_usd > 0
        ]
        return sorted(breakdown, key=lambda item: item["cost_usd"], reverse=True)

    def top_models(self, limit: int = 5) -> list[dict]:
        """Models by total tokens consumed."""
        by_model = self._by_model(self.snapshot())
        ranked = sorted(
            (item for item in by_model.items() if item[1].total_tokens > 0),
            key=lambda item: item[1].total_tokens,
            reverse=True,
        )
        return [
            {
                "model": model,
                "usage": totals.to_dict(),
                "pricing": MODEL_PRICING[model].to_dict() if model in MODEL_PRICING else None,
            }
            for model, totals in ranked[:limit]
        ]

    def usage_stats(self) -> dict:
        totals = self.get_total()
        top = self.top_models(1)
        return {
            "total_requests": totals.requests,
            "total_tokens": totals.total_tokens,
            "total_cost_usd": float(totals.cost_usd),
            "average_tokens_per_request": round(totals.total_tokens / totals.requests) if totals.requests else 0,
            "top_model": top[0]["model"] if top else None,
        }

    def check_budget_limit(self, budget_usd: float) -> dict:
        spend = self.get_total().cost_usd
        budget = Decimal(str(budget_usd))
        return {
            "is_over_budget": spend >= budget,
            "current_spend_usd": float(spend),
            "remaining_budget_usd": float(max(Decimal("0"), budget - spend)),
            "percentage_used": float(spend / budget * 100) if budget > 0 else 0.0,
        }

    def export(self) -> dict:
        records = self.snapshot()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total": self.get_total().to_dict(),
            "by_model": {m: t.to_dict() for m, t in self._by_model(records).items()},
            "cost_breakdown": self.cost_breakdown(),
            "top_models": self.top_models(),
        }

    def reset(self) -> None:
        self._records.clear()
