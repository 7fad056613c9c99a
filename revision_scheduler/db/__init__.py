"""Database models for revision state."""

from revision_scheduler.db.models import Base, PerformanceSnapshotRow, RevisionItemRow

__all__ = ["Base", "RevisionItemRow", "PerformanceSnapshotRow"]
