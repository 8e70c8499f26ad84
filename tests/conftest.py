"""
Pytest configuration and fixtures.
"""
import os

import httpx
import pytest

# Set test environment variables
os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key")
os.environ.setdefault("OPENROUTER_BASE_URL", "https://openrouter.test/api/v1")
os.environ.setdefault("DEFAULT_MODEL", "openai/gpt-4o")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("MAX_RETRIES", "2")
os.environ.setdefault("RETRY_BASE_DELAY_SECONDS", "0")
os.environ.setdefault("RETRY_MAX_DELAY_SECONDS", "0")
os.environ.setdefault("COMPLETION_TIMEOUT_SECONDS", "5")

from agents.executor import StepExecutor  # noqa: E402
from agents.resilience import RetryPolicy  # noqa: E402
from services.openrouter import OpenRouterClient  # noqa: E402
from services.usage import UsageTracker  # noqa: E402

from tests.fakes import BASE_URL, FakeProvider  # noqa: E402


@pytest.fixture
def fake_provider():
    """Scripted fake completion provider."""
    return FakeProvider()


@pytest.fixture
def openrouter_client(fake_provider):
    """OpenRouterClient wired to the fake provider."""
    return OpenRouterClient(
        api_key="test-key",
        base_url=BASE_URL,
        transport=httpx.MockTransport(fake_provider),
    )


@pytest.fixture
def usage_tracker():
    return UsageTracker()


@pytest.fixture
def retry_policy():
    """Fast retry policy: no backoff delay."""
    return RetryPolicy(max_retries=3, base_delay=0, max_delay=0, timeout=5)


@pytest.fixture
def executor(openrouter_client, retry_policy, usage_tracker):
    """StepExecutor against the fake provider."""
    return StepExecutor(
        openrouter_client,
        policy=retry_policy,
        tracker=usage_tracker,
        default_model="openai/gpt-4o",
    )


@pytest.fixture
def sample_brief():
    """Brief for an artisan bakery."""
    return {
        "brief": "Artisan bakery in Lyon selling sourdough and pastries",
        "style": "warm and rustic",
        "industry": "food",
        "target_audience": "local families",
    }
