"""
StepExecutor - runs any pipeline step described by a StepDefinition.

One executor serves every step: prompts and output contracts are data in
the step registry, so there is no per-agent subclass. Each execution:

1. builds the prompt from the run's context
2. calls the completion client under the resilience wrapper
3. extracts and validates the JSON result

and always returns a StepResult envelope. Failures never propagate past the
executor except cancellation, which is caller-initiated and not a fault.
"""
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from agents.cancellation import CancellationSignal
from agents.context import PipelineContext, StepId
from agents.errors import (
    OperationCancelledError,
    PipelineError,
    RetryExhaustedError,
    UnparsableResponseError,
)
from agents.parsing import extract_json, validate_contract
from agents.resilience import RetryPolicy, with_resilience
from agents.steps import build_prompt, get_step_definition, resolve_step_id
from services.openrouter import (
    CompletionOptions,
    CompletionResult,
    OnToken,
    OpenRouterClient,
    TokenUsage,
)
from services.pricing import estimate_cost
from services.usage import UsageRecord, UsageTracker

logger = structlog.get_logger()


@dataclass
class RuntimeOptions:
    """Per-execution options supplied by the pipeline runner."""
    run_id: Optional[UUID] = None
    sequence: int = 0
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    api_key: Optional[str] = None
    cancel_signal: Optional[CancellationSignal] = None
    on_token: Optional[OnToken] = None
    stream: bool = False

    @property
    def execution_id(self) -> str:
        return f"{self.run_id or 'adhoc'}:{self.sequence}"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one step execution. Immutable once created."""
    step_id: Union[StepId, str]
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    estimated_cost: Decimal = Decimal("0")
    latency_ms: int = 0
    retry_count: int = 0
    model: Optional[str] = None
    execution_id: Optional[str] = None
    # Diagnostics only: raw model text when it could not be parsed
    raw_text: Optional[str] = field(default=None, repr=False)

    def to_dict(self, include_raw: bool = False) -> dict:
        data = {
            "step_id": getattr(self.step_id, "value", self.step_id),
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "error_kind": self.error_kind,
            "token_usage": self.token_usage.to_dict(),
            "estimated_cost": float(self.estimated_cost),
            "latency_ms": self.latency_ms,
            "retry_count": self.retry_count,
            "model": self.model,
            "execution_id": self.execution_id,
        }
        if include_raw:
            data["raw_text"] = self.raw_text
        return data


def _coerce_step(step_id: Union[StepId, str]) -> Union[StepId, str]:
    try:
        return resolve_step_id(step_id)
    except PipelineError:
        return str(step_id)


class StepExecutor:
    """
    Executes pipeline steps against the completion client.

    Token usage and cost are recorded on the injected UsageTracker for every
    completion that returned, successful or not.
    """

    def __init__(
        self,
        client: OpenRouterClient,
        policy: Optional[RetryPolicy] = None,
        tracker: Optional[UsageTracker] = None,
        default_model: str = "openai/gpt-4o",
        sleep=None,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self.tracker = tracker
        self.default_model = default_model
        self._sleep = sleep

    async def execute(
        self,
        step_id: Union[StepId, str],
        context: PipelineContext,
        options: Optional[RuntimeOptions] = None,
    ) -> StepResult:
        """
        Execute one step.

        Args:
            step_id: Step to run
            context: The run's context (read only here)
            options: RuntimeOptions

        Returns:
            StepResult (success=False with error/error_kind on failure)

        Raises:
            OperationCancelledError: the run was cancelled mid-step
        """
        options = options or RuntimeOptions()
        start_time = time.monotonic()
        retries = 0
        model = options.model or self.default_model
        completion: Optional[CompletionResult] = None
        log = logger.bind(
            step=str(getattr(step_id, "value", step_id)),
            run_id=str(options.run_id) if options.run_id else None,
            execution_id=options.execution_id,
        )

        def count_retry(attempt: int, error: PipelineError, delay: float) -> None:
            nonlocal retries
            retries = attempt

        try:
            step = resolve_step_id(step_id)
            definition = get_step_definition(step)
            prompt = build_prompt(step, context)

            completion_options = CompletionOptions(
                model=model,
                temperature=options.temperature if options.temperature is not None else definition.temperature,
                max_tokens=options.max_tokens or definition.max_tokens,
                cancel_signal=options.cancel_signal,
                api_key=options.api_key,
            )

            async def attempt() -> CompletionResult:
                if options.stream or options.on_token:
                    return await self.client.complete_streaming(
                        prompt.system_prompt, prompt.user_prompt, completion_options, options.on_token
                    )
                return await self.client.complete(
                    prompt.system_prompt, prompt.user_prompt, completion_options
                )

            log.info("Step started", model=model)

            kwargs = {"on_retry": count_retry, "signal": options.cancel_signal}
            if self._sleep is not None:
                kwargs["sleep"] = self._sleep
            completion = await with_resilience(attempt, self.policy, **kwargs)

            parsed = extract_json(completion.text)
            data = validate_contract(
                parsed,
                definition.required_fields,
                definition.default_backfill,
                definition.field_types,
            )

        except OperationCancelledError:
            log.info("Step cancelled", retry_count=retries)
            raise

        except PipelineError as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            usage = completion.token_usage if completion else TokenUsage()
            cost = estimate_cost(model, usage.total_tokens) if completion else Decimal("0")
            if completion:
                self._record_usage(model, usage, cost, False, step_id, options)

            raw_text = e.raw_text if isinstance(e, UnparsableResponseError) else None
            retry_count = e.attempts - 1 if isinstance(e, RetryExhaustedError) else retries

            log.error(
                "Step failed",
                error_kind=e.kind,
                error=e.message,
                retry_count=retry_count,
                latency_ms=latency_ms,
                raw_text=raw_text[:2000] if raw_text else None,
            )
            return StepResult(
                step_id=_coerce_step(step_id),
                success=False,
                error=e.message,
                error_kind=e.kind,
                token_usage=usage,
                estimated_cost=cost,
                latency_ms=latency_ms,
                retry_count=retry_count,
                model=model,
                execution_id=options.execution_id,
                raw_text=raw_text,
            )

        except Exception as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            usage = completion.token_usage if completion else TokenUsage()
            cost = estimate_cost(model, usage.total_tokens) if completion else Decimal("0")
            if completion:
                self._record_usage(model, usage, cost, False, step_id, options)

            log.error(
                "Step crashed",
                error=str(e),
                retry_count=retries,
                latency_ms=latency_ms,
                exc_info=True,
            )
            return StepResult(
                step_id=_coerce_step(step_id),
                success=False,
                error=f"Internal error: {e}",
                error_kind="internal_error",
                token_usage=usage,
                estimated_cost=cost,
                latency_ms=latency_ms,
                retry_count=retries,
                model=model,
                execution_id=options.execution_id,
            )

        latency_ms = int((time.monotonic() - start_time) * 1000)
        usage = completion.token_usage
        cost = estimate_cost(model, usage.total_tokens)
        self._record_usage(model, usage, cost, True, step, options)

        log.info(
            "Step completed",
            model=model,
            total_tokens=usage.total_tokens,
            cost_usd=float(cost),
            retry_count=retries,
            latency_ms=latency_ms,
        )
        return StepResult(
            step_id=step,
            success=True,
            data=data,
            token_usage=usage,
            estimated_cost=cost,
            latency_ms=latency_ms,
            retry_count=retries,
            model=model,
            execution_id=options.execution_id,
        )

    def _record_usage(
        self,
        model: str,
        usage: TokenUsage,
        cost: Decimal,
        success: bool,
        step_id: Union[StepId, str],
        options: RuntimeOptions,
    ) -> None:
        if not self.tracker:
            return
        self.tracker.record(UsageRecord(
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost_usd=cost,
            success=success,
            step=str(getattr(step_id, "value", step_id)),
            run_id=str(options.run_id) if options.run_id else None,
        ))
