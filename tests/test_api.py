"""
API endpoint tests.
"""
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

# Import after setting env vars
from api.main import app
from agents.context import StepId
from config import settings

BRIEF = {"brief": "Artisan bakery in Lyon selling sourdough and pastries"}


@pytest.fixture
def client(openrouter_client):
    """Test client with the app's provider client swapped for the fake one."""
    with patch("api.main.OpenRouterClient", return_value=openrouter_client):
        with TestClient(app) as test_client:
            yield test_client


def wait_for_status(client, run_id, statuses=("completed", "failed", "cancelled"), timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/generations/{run_id}").json()
        if data["status"] in statuses:
            return data
        time.sleep(0.02)
    raise AssertionError(f"run {run_id} did not reach {statuses}")


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Health check should return 200 with status healthy."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "0.1.0"


class TestRootEndpoint:
    """Tests for root endpoint."""

    def test_root_returns_api_info(self, client):
        """Root should return API information."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "WebStudio AI Generation API"
        assert "version" in data


class TestGenerationEndpoints:
    """Tests for generation endpoints."""

    def test_start_and_complete(self, client):
        """Should accept a brief and run the three default steps."""
        response = client.post("/generations", json=BRIEF)

        assert response.status_code == 202
        run_id = response.json()["run_id"]
        assert response.json()["steps"] == ["architecture", "content", "layout"]

        data = wait_for_status(client, run_id)
        assert data["status"] == "completed"
        assert data["progress"] == 100
        assert len(data["history"]) == 3
        assert data["totals"]["tokens"] == 450
        assert set(data["outputs"]) == {"architecture", "content", "layout"}

    def test_export_format_adds_step(self, client):
        """Should add the export step when a format is requested."""
        response = client.post("/generations", json={**BRIEF, "export_format": "html"})

        assert response.status_code == 202
        assert response.json()["steps"][-1] == "export"

    def test_short_brief_rejected(self, client):
        """Should validate the brief length."""
        response = client.post("/generations", json={"brief": "short"})
        assert response.status_code == 422

    def test_unknown_step_rejected(self, client):
        """Should reject steps outside the pipeline."""
        response = client.post("/generations", json={**BRIEF, "steps": ["branding"]})
        assert response.status_code == 422

    def test_missing_dependency_is_400(self, client):
        """Should reject a sequence whose dependencies are neither run nor seeded."""
        response = client.post("/generations", json={**BRIEF, "steps": ["layout"]})

        assert response.status_code == 400
        assert response.json()["kind"] == "missing_dependency"

    def test_out_of_order_is_400(self, client):
        """Should reject steps out of canonical order."""
        response = client.post("/generations", json={**BRIEF, "steps": ["content", "architecture"]})
        assert response.status_code == 400

    def test_unknown_run_is_404(self, client):
        """Should return 404 for an unknown run id."""
        response = client.get("/generations/00000000-0000-4000-8000-000000000000")

        assert response.status_code == 404
        assert response.json()["kind"] == "run_not_found"

    def test_byok_header_forwarded(self, client, fake_provider):
        """Should bill the run to the caller's key."""
        response = client.post(
            "/generations",
            json={**BRIEF, "steps": ["architecture"]},
            headers={"X-Provider-Key": "sk-or-user"},
        )
        wait_for_status(client, response.json()["run_id"])

        assert fake_provider.headers[0]["authorization"] == "Bearer sk-or-user"

    def test_failed_run_reports_error(self, client, fake_provider):
        """Should report the failing step without exposing raw model text."""
        fake_provider.script(StepId.ARCHITECTURE, "Sorry, no JSON today")
        response = client.post("/generations", json=BRIEF)

        data = wait_for_status(client, response.json()["run_id"])

        assert data["status"] == "failed"
        assert data["error_kind"] == "unparsable_response"
        assert data["failed_step"] == "architecture"
        assert "Sorry, no JSON today" not in str(data)
        assert "raw_text" not in data["history"][0]

    def test_cancel_run(self, client, fake_provider):
        """Should cancel an in-flight run."""
        fake_provider.script(StepId.ARCHITECTURE, "hang")
        run_id = client.post("/generations", json=BRIEF).json()["run_id"]

        response = client.post(f"/generations/{run_id}/cancel")
        assert response.status_code == 202

        data = wait_for_status(client, run_id)
        assert data["status"] == "cancelled"
        assert data["history"] == []

    def test_discard_run(self, client):
        """Should discard a finished run."""
        run_id = client.post("/generations", json={**BRIEF, "steps": ["architecture"]}).json()["run_id"]
        wait_for_status(client, run_id)

        assert client.delete(f"/generations/{run_id}").status_code == 204
        assert client.get(f"/generations/{run_id}").status_code == 404

    def test_discard_running_run_conflicts(self, client, fake_provider):
        """Should refuse to discard a run in progress."""
        fake_provider.script(StepId.ARCHITECTURE, "hang")
        run_id = client.post("/generations", json=BRIEF).json()["run_id"]
        wait_for_status(client, run_id, statuses=("running",))

        assert client.delete(f"/generations/{run_id}").status_code == 409
        client.post(f"/generations/{run_id}/cancel")

    def test_list_runs(self, client):
        """Should list retained runs."""
        client.post("/generations", json={**BRIEF, "steps": ["architecture"]})
        data = client.get("/generations").json()
        assert data["total"] == 1

    def test_event_stream_for_finished_run(self, client):
        """Should stream a terminal event for a finished run."""
        run_id = client.post("/generations", json={**BRIEF, "steps": ["architecture"]}).json()["run_id"]
        wait_for_status(client, run_id)

        response = client.get(f"/generations/{run_id}/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: run_completed" in response.text


class TestUsageEndpoints:
    """Tests for usage endpoints."""

    def test_usage_reflects_runs(self, client):
        """Usage totals should include completed runs."""
        run_id = client.post("/generations", json={**BRIEF, "steps": ["architecture"]}).json()["run_id"]
        wait_for_status(client, run_id)

        data = client.get("/usage").json()

        assert data["total"]["total_tokens"] == 150
        assert data["total"]["requests"] == 1
        assert data["by_model"]["openai/gpt-4o"]["total_tokens"] == 150
        assert data["top_model"] == "openai/gpt-4o"

    def test_usage_budget_query(self, client):
        """Should report budget status for a given limit."""
        data = client.get("/usage", params={"budget_usd": 10}).json()
        assert data["budget"]["is_over_budget"] is False
        assert data["budget"]["remaining_budget_usd"] == 10

    def test_budget_exhausted_blocks_new_runs(self, client):
        """Should refuse new runs once the configured budget is spent."""
        run_id = client.post("/generations", json={**BRIEF, "steps": ["architecture"]}).json()["run_id"]
        wait_for_status(client, run_id)

        with patch.object(settings, "budget_limit_usd", 0.001):
            response = client.post("/generations", json=BRIEF)

        assert response.status_code == 402

    def test_model_pricing(self, client):
        """Should list the pricing table."""
        data = client.get("/usage/models").json()
        assert any(item["model"] == "openai/gpt-4o" for item in data)

    def test_single_model_pricing(self, client):
        """Should look up one model by its OpenRouter id."""
        assert client.get("/usage/models/openai/gpt-4o").json()["provider"] == "OpenAI"
        assert client.get("/usage/models/acme/unknown").status_code == 404

    def test_reset_usage(self, client):
        """Should clear usage totals."""
        assert client.delete("/usage").status_code == 204
        assert client.get("/usage").json()["total"]["requests"] == 0
