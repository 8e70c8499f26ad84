"""
FastAPI dependencies for the shared pipeline services.

The run manager and usage tracker are created once in the application
lifespan and live on ``app.state``.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
import structlog

from pipeline.manager import RunManager
from services.usage import UsageTracker

logger = structlog.get_logger()


async def get_run_manager(request: Request) -> RunManager:
    """Get the process-wide run manager."""
    manager = getattr(request.app.state, "run_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline service is not ready",
        )
    return manager


async def get_usage_tracker(request: Request) -> UsageTracker:
    """Get the process-wide usage tracker."""
    tracker = getattr(request.app.state, "usage_tracker", None)
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Usage tracking is not ready",
        )
    return tracker


async def get_provider_key(
    x_provider_key: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """
    Bring-your-own OpenRouter key from the X-Provider-Key header.

    Falls back to the configured key when absent.
    """
    if x_provider_key is None:
        return None
    key = x_provider_key.strip()
    if not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Provider-Key header is empty",
        )
    return key


# Type aliases for cleaner route signatures
Manager = Annotated[RunManager, Depends(get_run_manager)]
Tracker = Annotated[UsageTracker, Depends(get_usage_tracker)]
ProviderKey = Annotated[Optional[str], Depends(get_provider_key)]
