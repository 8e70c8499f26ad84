"""
PipelineRunner - drives one PipelineRun through its step sequence.

Steps run strictly in order: each prompt is built from the previous step's
validated output. A failed step ends the run; the runner never retries at
its own level (completion retries live in the resilience wrapper).
"""
import asyncio
import inspect
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from agents.context import PipelineContext, StepId
from agents.errors import MissingDependencyError, OperationCancelledError
from agents.executor import RuntimeOptions, StepExecutor
from agents.steps import check_inputs, get_step_definition, resolve_step_id
from pipeline.run import PipelineRun

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while a run executes."""
    type: str
    run_id: str
    step: Optional[str] = None
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "run_id": self.run_id,
            "step": self.step,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


OnEvent = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


def validate_sequence(
    steps: Iterable[Union[StepId, str]],
    context: Optional[PipelineContext] = None,
) -> list[StepId]:
    """
    Check a step sequence before a run starts.

    Steps must be unique and in canonical order, must not already have a
    seeded output, and every dependency must either run earlier in the
    sequence or be seeded in the context. Required brief inputs are checked
    up front as well.

    Raises:
        UnknownStepError, MissingDependencyError, ValueError
    """
    if context is None:
        context = PipelineContext()
    resolved = [resolve_step_id(step) for step in steps]
    if not resolved:
        raise ValueError("A pipeline run needs at least one step")
    if len(set(resolved)) != len(resolved):
        raise ValueError("Pipeline steps must be unique")
    positions = [step.position for step in resolved]
    if positions != sorted(positions):
        raise ValueError(
            "Pipeline steps must follow the order: "
            + " -> ".join(step.value for step in StepId.canonical_order())
        )

    available = set(context)
    for step in resolved:
        if step in available:
            raise ValueError(f"Step '{step.value}' already has a seeded output")
        definition = get_step_definition(step)
        for dependency in definition.depends_on:
            if dependency not in available:
                raise MissingDependencyError(
                    step.value, dependency.value, "not earlier in the sequence and not seeded"
                )
        check_inputs(definition, context.input_data)
        available.add(step)
    return resolved


class PipelineRunner:
    """
    Executes a single PipelineRun. Construct one per run.

    Usage:
        run = PipelineRun(steps=[StepId.ARCHITECTURE, StepId.CONTENT], context=ctx)
        runner = PipelineRunner(run, executor)
        await runner.run()
    """

    def __init__(
        self,
        run: PipelineRun,
        executor: StepExecutor,
        on_event: Optional[OnEvent] = None,
    ):
        self.run_state = run
        self.executor = executor
        self.on_event = on_event
        self._sequence = itertools.count(1)

    async def _emit(self, event_type: str, step: Optional[StepId] = None, **data: Any) -> None:
        if not self.on_event:
            return
        event = ProgressEvent(
            type=event_type,
            run_id=str(self.run_state.run_id),
            step=step.value if step else None,
            data=data,
        )
        outcome = self.on_event(event)
        if inspect.isawaitable(outcome):
            await outcome

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        """Request cancellation; the in-flight step aborts promptly."""
        self.run_state.cancel_signal.cancel(reason)

    async def run(self) -> PipelineRun:
        """
        Execute every configured step in order.

        Returns:
            The run in a terminal state

        Raises:
            MissingDependencyError / UnknownStepError / ValueError: invalid
                sequence (run stays pending)
            InvalidTransitionError: the run was already started
        """
        run = self.run_state
        run.steps = validate_sequence(run.steps, run.context)
        log = logger.bind(run_id=str(run.run_id))

        if run.cancel_signal.cancelled:
            run.mark_cancelled()
            await self._emit("run_cancelled")
            return run

        run.mark_running()
        log.info("Pipeline run started", steps=[step.value for step in run.steps])
        await self._emit("run_started", steps=[step.value for step in run.steps])

        try:
            while run.current_step is not None:
                step = run.current_step
                run.cancel_signal.raise_if_cancelled()

                definition = get_step_definition(step)
                run.log(f"Starting step: {definition.display_name}", step=step)
                await self._emit("step_started", step, display_name=definition.display_name)

                result = await self.executor.execute(
                    step, run.context, self._runtime_options(step)
                )
                run.record_step(result)

                if not result.success:
                    run.mark_failed(result.error, result.error_kind, step)
                    log.error(
                        "Pipeline run failed",
                        step=step.value,
                        error_kind=result.error_kind,
                        error=result.error,
                    )
                    await self._emit(
                        "step_failed", step,
                        display_name=definition.display_name,
                        error=result.error,
                        error_kind=result.error_kind,
                    )
                    await self._emit("run_failed", step, error=result.error, error_kind=result.error_kind)
                    return run

                await self._emit(
                    "step_completed", step,
                    tokens=result.token_usage.total_tokens,
                    cost=float(result.estimated_cost),
                    progress=run.progress,
                )

        except OperationCancelledError:
            self._cancelled(log)
            await self._emit("run_cancelled", run.current_step)
            return run

        except asyncio.CancelledError:
            # The task driving this run was cancelled directly
            if not run.status.is_terminal:
                self._cancelled(log)
                await self._emit("run_cancelled", run.current_step)
            raise

        run.mark_completed()
        log.info(
            "Pipeline run completed",
            total_tokens=run.total_tokens,
            cost_usd=float(run.total_cost),
        )
        await self._emit("run_completed", tokens=run.total_tokens, cost=float(run.total_cost))
        return run

    def _cancelled(self, log) -> None:
        self.run_state.mark_cancelled()
        log.warning(
            "Pipeline run cancelled",
            completed_steps=self.run_state.current_step_index,
        )

    def _runtime_options(self, step: StepId) -> RuntimeOptions:
        run = self.run_state
        on_token = None
        if run.options.stream and self.on_event:

            async def on_token(delta: str, accumulated: str) -> None:
                await self._emit("token", step, delta=delta, length=len(accumulated))

        return RuntimeOptions(
            run_id=run.run_id,
            sequence=next(self._sequence),
            model=run.options.model,
            temperature=run.options.temperature,
            max_tokens=run.options.max_tokens,
            api_key=run.options.api_key,
            cancel_signal=run.cancel_signal,
            on_token=on_token,
            stream=run.options.stream,
        )


async def run_pipeline(
    executor: StepExecutor,
    input_data: dict,
    steps: Optional[Iterable[Union[StepId, str]]] = None,
    on_event: Optional[OnEvent] = None,
) -> PipelineRun:
    """Convenience: build a run for ``input_data`` and execute it to completion."""
    run = PipelineRun(
        steps=list(steps or [StepId.ARCHITECTURE, StepId.CONTENT, StepId.LAYOUT]),
        context=PipelineContext(input_data=input_data),
    )
    return await PipelineRunner(run, executor, on_event=on_event).run()
