"""
PipelineRun - state of one end-to-end generation request.

Status transitions are the only mutations besides appending step results
and log entries:

    pending -> running -> completed | failed | cancelled
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from agents.cancellation import CancellationSignal
from agents.context import PipelineContext, StepId
from agents.errors import InvalidTransitionError
from agents.executor import StepResult


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


_ALLOWED_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELLED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELLED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunLogEntry:
    timestamp: datetime
    step: Optional[str]
    message: str
    level: str = "info"  # info, warning, error, success

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "step": self.step,
            "message": self.message,
            "level": self.level,
        }


@dataclass
class RunOptions:
    """Caller-chosen options applied to every step of a run."""
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    api_key: Optional[str] = field(default=None, repr=False)
    stream: bool = False

    def __post_init__(self):
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")


@dataclass
class PipelineRun:
    """One execution of a configured step sequence."""
    steps: list[StepId]
    context: PipelineContext = field(default_factory=PipelineContext)
    options: RunOptions = field(default_factory=RunOptions)
    run_id: UUID = field(default_factory=uuid4)
    status: RunStatus = RunStatus.PENDING
    current_step_index: int = 0
    history: list[StepResult] = field(default_factory=list)
    logs: list[RunLogEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    failed_step: Optional[StepId] = None
    cancel_signal: CancellationSignal = field(default_factory=CancellationSignal, repr=False)

    # Transitions

    def _transition(self, target: RunStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move run {self.run_id} from {self.status.value} to {target.value}"
            )
        self.status = target

    def mark_running(self) -> None:
        self._transition(RunStatus.RUNNING)
        self.started_at = _utcnow()
        self.log("Pipeline started", level="info")

    def record_step(self, result: StepResult) -> None:
        """Append a finished step's result; successful output joins the context."""
        if self.status != RunStatus.RUNNING:
            raise InvalidTransitionError(f"Run {self.run_id} is not running")
        expected = self.steps[self.current_step_index]
        if result.step_id != expected:
            raise InvalidTransitionError(
                f"Expected result for step '{expected.value}', got '{result.step_id}'"
            )

        self.history.append(result)
        self.current_step_index += 1
        if result.success:
            self.context.record(expected, result.data)
            self.log(
                f"Step completed. Tokens: {result.token_usage.total_tokens}, "
                f"Cost: ${result.estimated_cost:.4f}",
                step=expected,
                level="success",
            )
        else:
            self.log(f"Step failed: {result.error}", step=expected, level="error")

    def mark_completed(self) -> None:
        self._transition(RunStatus.COMPLETED)
        self.completed_at = _utcnow()
        self.log("Pipeline completed successfully", level="success")

    def mark_failed(
        self,
        error: Optional[str],
        error_kind: Optional[str] = None,
        step: Optional[StepId] = None,
    ) -> None:
        self._transition(RunStatus.FAILED)
        self.completed_at = _utcnow()
        self.error = error
        self.error_kind = error_kind
        self.failed_step = step
        self.log(f"Pipeline failed: {error}", step=step, level="error")

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        self._transition(RunStatus.CANCELLED)
        self.completed_at = _utcnow()
        self.error = reason or self.cancel_signal.reason or "Cancelled"
        self.error_kind = "cancelled"
        self.log("Pipeline cancelled by user", level="warning")

    def log(self, message: str, step: Optional[StepId] = None, level: str = "info") -> None:
        self.logs.append(RunLogEntry(
            timestamp=_utcnow(),
            step=step.value if step else None,
            message=message,
            level=level,
        ))

    # Derived state

    @property
    def current_step(self) -> Optional[StepId]:
        if self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    @property
    def total_tokens(self) -> int:
        return sum(result.token_usage.total_tokens for result in self.history)

    @property
    def total_cost(self) -> Decimal:
        return sum((result.estimated_cost for result in self.history), Decimal("0"))

    @property
    def progress(self) -> float:
        if not self.steps:
            return 100.0
        return round(self.current_step_index / len(self.steps) * 100, 2)

    @property
    def final_output(self) -> Any:
        if self.status != RunStatus.COMPLETED or not self.steps:
            return None
        return self.context.get(self.steps[-1])

    def to_dict(self, include_outputs: bool = True) -> dict:
        data = {
            "run_id": str(self.run_id),
            "status": self.status.value,
            "steps": [step.value for step in self.steps],
            "current_step_index": self.current_step_index,
            "current_step": self.current_step.value if self.current_step else None,
            "progress": self.progress,
            "history": [result.to_dict() for result in self.history],
            "logs": [entry.to_dict() for entry in self.logs],
            "totals": {
                "tokens": self.total_tokens,
                "cost": float(self.total_cost),
            },
            "error": self.error,
            "error_kind": self.error_kind,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_outputs:
            data["outputs"] = self.context.to_dict()
        return data
