"""
RunManager - caller-facing entry point for starting and observing runs.

Runs execute as fire-and-forget asyncio tasks in the current event loop.
A semaphore caps how many execute at once; the rest wait as pending.
"""
import asyncio
from collections import OrderedDict
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog

from agents.context import PipelineContext, StepId
from agents.errors import InvalidTransitionError, RunNotFoundError
from agents.executor import StepExecutor
from pipeline.run import PipelineRun, RunOptions, RunStatus
from pipeline.runner import PipelineRunner, ProgressEvent, validate_sequence

logger = structlog.get_logger()

TERMINAL_EVENTS = {"run_completed", "run_failed", "run_cancelled"}


def resolve_steps(initial_input: dict) -> list[StepId]:
    """
    Default step sequence for a brief.

    Architecture, content and layout always run; export joins when an
    export format is requested and deployment when a platform is named.
    """
    steps = [StepId.ARCHITECTURE, StepId.CONTENT, StepId.LAYOUT]
    if initial_input.get("export_format"):
        steps.append(StepId.EXPORT)
        if initial_input.get("deploy_platform"):
            steps.append(StepId.DEPLOYMENT)
    return steps


class RunManager:
    """
    Tracks every live and recently finished run in this process.

    Usage:
        manager = RunManager(executor)
        run_id = manager.start_run({"brief": "Artisan bakery in Lyon"})
        queue = manager.subscribe(run_id)
        snapshot = manager.get_run_status(run_id)
    """

    def __init__(
        self,
        executor: StepExecutor,
        max_concurrent_runs: int = 4,
        max_retained_runs: int = 100,
    ):
        if max_concurrent_runs < 1:
            raise ValueError("max_concurrent_runs must be at least 1")
        self.executor = executor
        self.max_retained_runs = max_retained_runs
        self._semaphore = asyncio.Semaphore(max_concurrent_runs)
        self._runs: "OrderedDict[UUID, PipelineRun]" = OrderedDict()
        self._runners: dict[UUID, PipelineRunner] = {}
        self._tasks: dict[UUID, asyncio.Task] = {}
        self._subscribers: dict[UUID, list[asyncio.Queue]] = {}

    def _get(self, run_id: Union[UUID, str]) -> PipelineRun:
        try:
            key = run_id if isinstance(run_id, UUID) else UUID(str(run_id))
        except ValueError:
            raise RunNotFoundError(run_id)
        run = self._runs.get(key)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def start_run(
        self,
        initial_input: dict,
        steps: Optional[Iterable[Union[StepId, str]]] = None,
        seed: Optional[dict] = None,
        options: Optional[RunOptions] = None,
    ) -> UUID:
        """
        Register a run and schedule it on the event loop.

        Args:
            initial_input: The caller's brief
            steps: Explicit step sequence (defaults to resolve_steps)
            seed: Outputs of steps run elsewhere, keyed by step id
            options: RunOptions applied to every step

        Returns:
            The new run's id

        Raises:
            UnknownStepError / MissingDependencyError / ValueError for an
            invalid sequence; nothing is scheduled in that case.
        """
        context = PipelineContext(input_data=initial_input, outputs=seed)
        sequence = validate_sequence(
            steps if steps is not None else resolve_steps(initial_input),
            context,
        )
        run = PipelineRun(steps=sequence, context=context, options=options or RunOptions())
        runner = PipelineRunner(run, self.executor, on_event=self._publish)

        self._runs[run.run_id] = run
        self._runners[run.run_id] = runner
        self._subscribers[run.run_id] = []
        self._tasks[run.run_id] = asyncio.create_task(self._drive(runner))

        logger.info(
            "Pipeline run queued",
            run_id=str(run.run_id),
            steps=[step.value for step in sequence],
        )
        self._evict()
        return run.run_id

    async def _drive(self, runner: PipelineRunner) -> None:
        run = runner.run_state
        try:
            async with self._semaphore:
                await runner.run()
        except asyncio.CancelledError:
            # Cancelled while waiting for a slot; the runner handles its own
            if run.status == RunStatus.PENDING:
                run.mark_cancelled()
                self._publish(ProgressEvent(type="run_cancelled", run_id=str(run.run_id)))
            raise
        except Exception as e:
            logger.error(
                "Pipeline run crashed",
                run_id=str(run.run_id),
                error=str(e),
                exc_info=True,
            )
            if run.status == RunStatus.PENDING:
                run.mark_running()
            if not run.status.is_terminal:
                run.mark_failed(str(e), "internal_error", run.current_step)
            self._publish(ProgressEvent(
                type="run_failed",
                run_id=str(run.run_id),
                data={"error": str(e), "error_kind": "internal_error"},
            ))
        finally:
            self._tasks.pop(run.run_id, None)
            self._runners.pop(run.run_id, None)

    def _publish(self, event: ProgressEvent) -> None:
        for queue in self._subscribers.get(UUID(event.run_id), []):
            queue.put_nowait(event)

    def subscribe(self, run_id: Union[UUID, str]) -> asyncio.Queue:
        """
        Queue of ProgressEvents for a run.

        A finished run yields a single terminal event so consumers always
        see an end of stream.
        """
        run = self._get(run_id)
        queue: asyncio.Queue = asyncio.Queue()
        if run.status.is_terminal:
            queue.put_nowait(ProgressEvent(
                type=f"run_{run.status.value}",
                run_id=str(run.run_id),
                data={"error": run.error, "error_kind": run.error_kind} if run.error else {},
            ))
        else:
            self._subscribers[run.run_id].append(queue)
        return queue

    def unsubscribe(self, run_id: UUID, queue: asyncio.Queue) -> None:
        # The run may already have been discarded
        queues = self._subscribers.get(run_id, [])
        if queue in queues:
            queues.remove(queue)

    def get_run_status(self, run_id: Union[UUID, str], include_outputs: bool = True) -> dict:
        return self._get(run_id).to_dict(include_outputs=include_outputs)

    def get_run(self, run_id: Union[UUID, str]) -> PipelineRun:
        return self._get(run_id)

    def cancel_run(self, run_id: Union[UUID, str], reason: str = "Cancelled by caller") -> dict:
        """
        Request cancellation. A no-op for finished runs.

        A run still waiting for a slot is cancelled immediately; a running
        run aborts its in-flight step and ends as cancelled shortly after.
        """
        run = self._get(run_id)
        if run.status.is_terminal:
            return run.to_dict(include_outputs=False)

        run.cancel_signal.cancel(reason)
        if run.status == RunStatus.PENDING:
            run.mark_cancelled(reason)
            self._publish(ProgressEvent(type="run_cancelled", run_id=str(run.run_id)))
            self._runners.pop(run.run_id, None)
            task = self._tasks.pop(run.run_id, None)
            if task is not None:
                task.cancel()

        logger.info("Pipeline run cancellation requested", run_id=str(run.run_id), reason=reason)
        return run.to_dict(include_outputs=False)

    async def wait(self, run_id: Union[UUID, str], timeout: Optional[float] = None) -> PipelineRun:
        """
        Wait for a run to reach a terminal state.

        Raises:
            asyncio.TimeoutError: the run is still going after ``timeout`` seconds
        """
        run = self._get(run_id)
        task = self._tasks.get(run.run_id)
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                raise asyncio.TimeoutError(f"Run {run.run_id} still {run.status.value}")
        return run

    def discard(self, run_id: Union[UUID, str]) -> None:
        """Forget a finished run."""
        run = self._get(run_id)
        if not run.status.is_terminal:
            raise InvalidTransitionError(f"Run {run.run_id} is still {run.status.value}")
        self._forget(run.run_id)

    def list_runs(self) -> list[dict]:
        return [run.to_dict(include_outputs=False) for run in self._runs.values()]

    def _forget(self, run_id: UUID) -> None:
        self._runs.pop(run_id, None)
        self._subscribers.pop(run_id, None)

    def _evict(self) -> None:
        finished = [run_id for run_id, run in self._runs.items() if run.status.is_terminal]
        excess = len(self._runs) - self.max_retained_runs
        for run_id in finished[:max(0, excess)]:
            self._forget(run_id)

    async def aclose(self) -> None:
        """Cancel every in-flight run and wait for the tasks to unwind."""
        tasks = list(self._tasks.values())
        for run_id in list(self._tasks):
            run = self._runs.get(run_id)
            if run is not None:
                run.cancel_signal.cancel("Service shutting down")
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Run manager closed", cancelled_runs=len(tasks))
