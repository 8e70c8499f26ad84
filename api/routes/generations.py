"""
Generation routes: start, observe and cancel pipeline runs.
"""
import asyncio
import json
from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status
from fastapi.responses import StreamingResponse
import structlog

from agents.errors import InvalidTransitionError
from api.dependencies import Manager, ProviderKey, Tracker
from config import settings
from pipeline.manager import TERMINAL_EVENTS
from pipeline.run import RunOptions
from schemas.common import ErrorResponse
from schemas.generation import GenerationRunList, GenerationRunResponse, StartGenerationRequest

logger = structlog.get_logger()

router = APIRouter(prefix="/generations", tags=["Generations"])

KEEPALIVE_SECONDS = 15.0


@router.post(
    "",
    response_model=GenerationRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid step sequence or options"},
        402: {"model": ErrorResponse, "description": "Usage budget exhausted"},
    },
    summary="Start a website generation run",
    description="""
Starts the generation pipeline for a business brief:

1. **architecture** - sitemap, navigation, user flows, SEO plan
2. **content** - page copy and brand voice
3. **layout** - layout system, page layouts, components
4. **export** - only when `export_format` is set
5. **deployment** - only when `deploy_platform` is also set

Returns immediately with the run snapshot. Poll `/generations/{id}` or
subscribe to `/generations/{id}/events` for progress.
    """,
)
async def start_generation(
    request: StartGenerationRequest,
    manager: Manager,
    tracker: Tracker,
    provider_key: ProviderKey,
):
    """Start a new generation run."""
    if settings.budget_limit_usd is not None:
        budget = tracker.check_budget_limit(settings.budget_limit_usd)
        if budget["is_over_budget"]:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail=f"Usage budget of ${settings.budget_limit_usd:.2f} exhausted",
            )

    try:
        options = RunOptions(
            model=request.model,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            api_key=provider_key,
            stream=request.stream if request.stream is not None else settings.stream_completions,
        )
        run_id = manager.start_run(
            request.pipeline_input(),
            steps=request.steps,
            seed=request.seed,
            options=options,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(
        "Generation requested",
        run_id=str(run_id),
        model=request.model or settings.default_model,
        byok=provider_key is not None,
    )
    return manager.get_run_status(run_id)


@router.get(
    "",
    response_model=GenerationRunList,
    summary="List retained runs",
)
async def list_generations(manager: Manager):
    """List live and recently finished runs, without step outputs."""
    runs = manager.list_runs()
    return {"runs": runs, "total": len(runs)}


@router.get(
    "/{run_id}",
    response_model=GenerationRunResponse,
    responses={404: {"model": ErrorResponse, "description": "Run not found"}},
    summary="Get run status",
)
async def get_generation(run_id: UUID, manager: Manager):
    """Status, progress, step history, logs, totals and outputs of a run."""
    return manager.get_run_status(run_id)


@router.post(
    "/{run_id}/cancel",
    response_model=GenerationRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse, "description": "Run not found"}},
    summary="Cancel a run",
)
async def cancel_generation(run_id: UUID, manager: Manager):
    """
    Request cancellation. The in-flight step is aborted promptly and the run
    ends as cancelled; finished runs are returned unchanged.
    """
    return manager.cancel_run(run_id)


@router.delete(
    "/{run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        404: {"model": ErrorResponse, "description": "Run not found"},
        409: {"model": ErrorResponse, "description": "Run still in progress"},
    },
    summary="Discard a finished run",
)
async def discard_generation(run_id: UUID, manager: Manager):
    """Forget a finished run."""
    try:
        manager.discard(run_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{run_id}/events",
    responses={404: {"model": ErrorResponse, "description": "Run not found"}},
    summary="Stream run progress",
)
async def stream_generation_events(run_id: UUID, manager: Manager):
    """
    Server-sent events for a run: step lifecycle, streamed tokens and a
    final run_completed / run_failed / run_cancelled event.
    """
    queue = manager.subscribe(run_id)

    async def event_stream():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: {event.type}\ndata: {json.dumps(event.to_dict())}\n\n"
                if event.type in TERMINAL_EVENTS:
                    break
        finally:
            manager.unsubscribe(run_id, queue)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
