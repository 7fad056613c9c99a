"""FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from config import get_settings
from revision_scheduler.delivery.state_store import SqlStateStore
from revision_scheduler.service import RevisionService


@lru_cache(maxsize=1)
def get_service() -> RevisionService:
    """Process-wide service backed by the configured database."""
    settings = get_settings()
    return RevisionService.from_settings(settings, SqlStateStore(settings.database_url))
