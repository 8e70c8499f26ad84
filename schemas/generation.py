"""
Pydantic models for generation requests and run snapshots.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


StepName = Literal["architecture", "content", "layout", "export", "deployment"]
ExportFormat = Literal["html", "nextjs", "elementor", "zip"]
DeployPlatform = Literal["coolify", "vercel", "netlify", "github-pages", "aws"]
RunStatusName = Literal["pending", "running", "completed", "failed", "cancelled"]


class StartGenerationRequest(BaseModel):
    """Request body for starting a generation run."""
    brief: str = Field(..., min_length=10, max_length=5000, description="Free-form business description")
    style: Optional[str] = Field(default=None, description="Visual style, e.g. 'minimal'")
    industry: Optional[str] = None
    target_audience: Optional[str] = None
    competitors: Optional[list[str]] = Field(default=None, max_length=5)

    # Content step
    page_type: Optional[str] = Field(default=None, description="Page to write copy for")
    tone: Optional[str] = None
    keywords: Optional[list[str]] = Field(default=None, max_length=20)
    unique_value: Optional[str] = None

    # Export / deployment steps
    export_format: Optional[ExportFormat] = None
    include_assets: bool = True
    minify: bool = False
    optimize_for_seo: bool = True
    target_framework: Optional[str] = None
    deploy_platform: Optional[DeployPlatform] = None
    environment: Literal["development", "staging", "production"] = "production"
    domain: Optional[str] = None

    # Run options
    model: Optional[str] = Field(default=None, description="OpenRouter model id, e.g. 'openai/gpt-4o'")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0, le=32000)
    stream: Optional[bool] = Field(default=None, description="Stream tokens from the provider")
    steps: Optional[list[StepName]] = Field(
        default=None,
        min_length=1,
        description="Explicit step sequence; defaults to architecture, content, layout (+ export, deployment)",
    )
    seed: Optional[dict[StepName, Any]] = Field(
        default=None,
        description="Outputs of steps already generated elsewhere, keyed by step",
    )

    @field_validator("brief")
    @classmethod
    def strip_brief(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 10:
            raise ValueError("brief must contain at least 10 non-blank characters")
        return stripped

    def pipeline_input(self) -> dict:
        """Brief fields handed to the prompt builders."""
        return self.model_dump(
            exclude={"model", "temperature", "max_tokens", "stream", "steps", "seed"},
            exclude_none=True,
        )


class TokenUsageResponse(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0
    estimated: bool = False


class StepResultResponse(BaseModel):
    """Outcome of one step. Raw model text is never included."""
    step_id: str
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    token_usage: TokenUsageResponse
    estimated_cost: float
    latency_ms: int
    retry_count: int
    model: Optional[str] = None
    execution_id: Optional[str] = None


class RunLogResponse(BaseModel):
    timestamp: datetime
    step: Optional[str] = None
    message: str
    level: Literal["info", "warning", "error", "success"]


class RunTotals(BaseModel):
    tokens: int
    cost: float


class GenerationRunResponse(BaseModel):
    """Snapshot of a pipeline run."""
    run_id: str
    status: RunStatusName
    steps: list[str]
    current_step_index: int
    current_step: Optional[str] = None
    progress: float
    history: list[StepResultResponse] = Field(default_factory=list)
    logs: list[RunLogResponse] = Field(default_factory=list)
    totals: RunTotals
    error: Optional[str] = None
    error_kind: Optional[str] = None
    failed_step: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    outputs: Optional[dict[str, Any]] = None


class GenerationRunList(BaseModel):
    runs: list[GenerationRunResponse]
    total: int
