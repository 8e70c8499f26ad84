"""
Unit tests for pricing and the usage tracker.
"""
from decimal import Decimal

import pytest

from services.pricing import MODEL_PRICING, estimate_cost, estimate_tokens, get_model_pricing
from services.usage import UsageRecord, UsageTracker


def record(model="openai/gpt-4o", prompt=100, completion=50, success=True, step="architecture"):
    total = prompt + completion
    return UsageRecord(
        model=model,
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total,
        cost_usd=estimate_cost(model, total),
        success=success,
        step=step,
    )


class TestPricing:
    """Tests for the pricing table."""

    def test_known_model_cost(self):
        assert estimate_cost("openai/gpt-4o", 1000) == Decimal("0.015")

    def test_unknown_model_is_free(self):
        assert estimate_cost("acme/unknown", 10_000) == Decimal("0")

    def test_free_model(self):
        assert estimate_cost("deepseek/deepseek-r1-0528:free", 5000) == Decimal("0")

    def test_pricing_lookup(self):
        pricing = get_model_pricing("anthropic/claude-3.5-sonnet")
        assert pricing.provider == "Anthropic"
        assert pricing.to_dict()["cost_per_1k_tokens"] == 0.003
        assert get_model_pricing("acme/unknown") is None

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            MODEL_PRICING["acme/new"] = None

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestUsageTracker:
    """Tests for UsageTracker aggregation."""

    @pytest.fixture
    def tracker(self):
        tracker = UsageTracker()
        tracker.record(record())
        tracker.record(record(prompt=300, completion=100))
        tracker.record(record(model="anthropic/claude-3-haiku", prompt=1000, completion=1000))
        return tracker

    def test_total(self, tracker):
        total = tracker.get_total()
        assert total.requests == 3
        assert total.total_tokens == 150 + 400 + 2000
        assert total.prompt_tokens == 1400
        assert total.cost_usd == Decimal("0.00825") + Decimal("0.0005")

    def test_by_model(self, tracker):
        gpt = tracker.get_by_model("openai/gpt-4o")
        assert gpt.requests == 2
        assert gpt.total_tokens == 550
        assert tracker.get_by_model("acme/unknown") is None

    def test_cost_breakdown_sorted(self, tracker):
        breakdown = tracker.cost_breakdown()
        assert [item["model"] for item in breakdown] == ["openai/gpt-4o", "anthropic/claude-3-haiku"]
        assert sum(item["percentage"] for item in breakdown) == pytest.approx(100)

    def test_top_models_by_tokens(self, tracker):
        top = tracker.top_models(limit=1)
        assert len(top) == 1
        assert top[0]["model"] == "anthropic/claude-3-haiku"
        assert top[0]["pricing"]["provider"] == "Anthropic"

    def test_usage_stats(self, tracker):
        stats = tracker.usage_stats()
        assert stats["total_requests"] == 3
        assert stats["average_tokens_per_request"] == round(2550 / 3)
        assert stats["top_model"] == "anthropic/claude-3-haiku"

    def test_budget_over(self, tracker):
        budget = tracker.check_budget_limit(0.005)
        assert budget["is_over_budget"] is True
        assert budget["remaining_budget_usd"] == 0

    def test_budget_under(self, tracker):
        budget = tracker.check_budget_limit(1.0)
        assert budget["is_over_budget"] is False
        assert budget["remaining_budget_usd"] == pytest.approx(1.0 - 0.00875)
        assert budget["percentage_used"] == pytest.approx(0.875)

    def test_export(self, tracker):
        exported = tracker.export()
        assert exported["total"]["requests"] == 3
        assert set(exported["by_model"]) == {"openai/gpt-4o", "anthropic/claude-3-haiku"}
        assert "timestamp" in exported

    def test_reset(self, tracker):
        tracker.reset()
        assert tracker.get_total().requests == 0
        assert tracker.usage_stats()["top_model"] is None

    def test_empty_tracker(self):
        tracker = UsageTracker()
        assert tracker.cost_breakdown() == []
        assert tracker.usage_stats()["average_tokens_per_request"] == 0

    def test_snapshot_is_detached(self, tracker):
        snapshot = tracker.snapshot()
        tracker.record(record())
        assert len(snapshot) == 3
