"""API routers for the revision scheduler."""

from revision_scheduler.api.routers import planning_router, revision_router

__all__ = [
    "revision_router",
    "planning_router",
]
