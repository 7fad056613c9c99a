"""
FastAPI application for the revision scheduler.

Provides REST API for:
- Revision item ingestion and lookup
- Review recording
- Due lists, daily schedules and catch-up sessions
- Forgetting curves, exam readiness and difficulty insights
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from revision_scheduler import __version__
from revision_scheduler.core.errors import (
    ConfigurationError,
    NotFoundError,
    ReviewValidationError,
    StorageError,
)
from revision_scheduler.logging_config import configure_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting revision scheduler API...")
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down revision scheduler API...")


app = FastAPI(
    title="Revision Scheduler",
    description="""
    Spaced-repetition scheduling for exam revision.

    ## Features

    - **Reviews**: Tier adaptation, exam-aware intervals, mastery tracking
    - **Planning**: Prioritized, interleaved, time-boxed daily sessions
    - **Prediction**: Forgetting curves and exam readiness
    """,
    version=__version__,
    lifespan=lifespan,
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ReviewValidationError)
async def validation_handler(request: Request, exc: ReviewValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "errors": exc.errors},
    )


@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable"},
    )


# ========================================
# Health Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "revision-scheduler",
        "version": __version__,
        "status": "ok",
    }


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current scheduling configuration (non-sensitive)."""
    return {
        "exam_date": settings.exam_date.isoformat() if settings.exam_date else None,
        "target_exam_retention": settings.target_exam_retention,
        "blend": {"sm2_weight": settings.sm2_weight, "exam_weight": settings.exam_weight},
        "interval_bounds": [settings.min_interval_days, settings.max_interval_days],
        "snapshot_history_limit": settings.snapshot_history_limit,
    }


# ========================================
# Routers
# ========================================

from revision_scheduler.api.routers import planning_router, revision_router  # noqa: E402

app.include_router(revision_router.router, prefix="/api/revision", tags=["Revision"])
app.include_router(planning_router.router, prefix="/api/planning", tags=["Planning"])
