"""
Revision Storage Models.

SQLAlchemy models backing SqlStateStore:
- Revision items keyed by (learner_id, item_id), stored as a JSON document
- Append-only performance snapshots per learner
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RevisionItemRow(Base):
    """
    One revision item.

    The full item is kept in `payload`; due date and subject are
    duplicated into columns for due queries.
    """

    __tablename__ = "revision_items"

    learner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    subject: Mapped[str] = mapped_column(String(128), default="General")
    next_due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    __table_args__ = (Index("idx_revision_items_due", "learner_id", "next_due_at"),)


class PerformanceSnapshotRow(Base):
    """One performance snapshot (append-only, capped per learner)."""

    __tablename__ = "performance_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    __table_args__ = (Index("idx_snapshots_learner", "learner_id", "id"),)
