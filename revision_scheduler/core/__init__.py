"""
Core Module - Shared domain models and errors.

Components:
- models: RevisionItem, ReviewEvent, PerformanceSnapshot, ScheduleSession, enums
- mastery: MasteryLevel lifecycle and time helpers
- errors: Domain error hierarchy

Design Principle:
The study/, adaptive/ and delivery/ modules import shared concepts from
revision_scheduler.core rather than redefining them.
"""

from revision_scheduler.core.errors import (
    ConfigurationError,
    NotFoundError,
    RevisionError,
    ReviewValidationError,
    StorageError,
)
from revision_scheduler.core.mastery import MasteryLevel
from revision_scheduler.core.models import (
    ContentType,
    DifficultyTier,
    ImportanceTier,
    PerformanceSnapshot,
    RevisionContent,
    RevisionItem,
    ReviewEvent,
    SchedulePreferences,
    ScheduleSession,
    SelfRating,
    SessionType,
)

__all__ = [
    # Errors
    "RevisionError",
    "ReviewValidationError",
    "NotFoundError",
    "ConfigurationError",
    "StorageError",
    # Mastery
    "MasteryLevel",
    # Models
    "ContentType",
    "DifficultyTier",
    "ImportanceTier",
    "PerformanceSnapshot",
    "RevisionContent",
    "RevisionItem",
    "ReviewEvent",
    "SchedulePreferences",
    "ScheduleSession",
    "SelfRating",
    "SessionType",
]
