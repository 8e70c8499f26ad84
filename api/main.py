"""
WebStudio AI Generation API - FastAPI Entry Point

Runs the website generation pipeline (architecture -> content -> layout ->
[export] -> [deployment]) against OpenRouter and reports progress, token
usage and cost.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from agents.errors import InvalidTransitionError, PipelineError, RunNotFoundError
from agents.executor import StepExecutor
from agents.resilience import RetryPolicy
from api.routes import generations_router, usage_router
from config import settings
from pipeline.manager import RunManager
from schemas.common import HealthResponse
from services.openrouter import OpenRouterClient
from services.usage import UsageTracker

VERSION = "0.1.0"

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(
        "Starting WebStudio AI Generation API",
        environment=settings.environment,
        default_model=settings.default_model,
        version=VERSION,
    )
    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY not set; runs need an X-Provider-Key header")

    client = OpenRouterClient()
    tracker = UsageTracker()
    executor = StepExecutor(
        client,
        policy=RetryPolicy.from_settings(settings),
        tracker=tracker,
        default_model=settings.default_model,
    )
    app.state.usage_tracker = tracker
    app.state.run_manager = RunManager(
        executor,
        max_concurrent_runs=settings.max_concurrent_runs,
        max_retained_runs=settings.max_retained_runs,
    )

    yield

    # Shutdown
    logger.info("Shutting down WebStudio AI Generation API")
    await app.state.run_manager.aclose()
    await client.aclose()


# Create FastAPI application
app = FastAPI(
    title="WebStudio AI Generation API",
    description="""
API for the WebStudio AI website generation pipeline.

## Steps

- **Architecture**: sitemap, navigation, user flows, SEO plan
- **Content**: page copy, SEO metadata, brand voice
- **Layout**: layout system, page layouts, component specs
- **Export** (optional): file tree for html, nextjs, elementor or zip
- **Deployment** (optional): deployment config for coolify, vercel, netlify, github-pages or aws

## Models

Completions go through OpenRouter. Pass your own key in the
`X-Provider-Key` header to bill a run to it:

```
X-Provider-Key: sk-or-...
```
    """,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
        settings.app_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """Map pipeline errors raised outside a run to HTTP responses."""
    if isinstance(exc, RunNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InvalidTransitionError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    logger.info(
        "Request rejected",
        path=request.url.path,
        method=request.method,
        error_kind=exc.kind,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "kind": exc.kind},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "details": str(exc) if settings.is_development else None,
        }
    )


# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check",
)
async def health_check():
    """
    Check if the service is healthy.

    Returns service status, timestamp, and version.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
    )


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Return API info."""
    return {
        "name": "WebStudio AI Generation API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
    }


# Include routers
app.include_router(generations_router)
app.include_router(usage_router)


# Development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
