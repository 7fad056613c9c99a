"""
Revision Delivery.

Components:
- ScheduleBuilder: Daily sessions with interleaving and catch-up placement
- RevisionStore: Storage protocol for items and snapshots
- InMemoryStore: Process-local persistence
- SqlStateStore: SQLAlchemy persistence
"""

from .schedule_builder import (
    BuilderConfig,
    ExamPhase,
    ScheduleBuilder,
    schedule_priority,
    sort_by_urgency,
)
from .state_store import InMemoryStore, RevisionStore, SqlStateStore

__all__ = [
    # Scheduling
    "ScheduleBuilder",
    "BuilderConfig",
    "ExamPhase",
    "schedule_priority",
    "sort_by_urgency",
    # Persistence
    "RevisionStore",
    "InMemoryStore",
    "SqlStateStore",
]
