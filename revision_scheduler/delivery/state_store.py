"""
State Stores for revision items and performance snapshots.

Provides persistence for:
- Revision items keyed by (learner_id, item_id)
- Append-only performance snapshots, capped per learner

Implementations:
- InMemoryStore: process-local dictionaries (tests, embedding)
- SqlStateStore: SQLAlchemy-backed (SQLite by default, any SQLAlchemy URL)

Both satisfy the RevisionStore protocol consumed by RevisionService.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger
from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from revision_scheduler.core.errors import StorageError
from revision_scheduler.core.models import PerformanceSnapshot, RevisionItem
from revision_scheduler.db.models import Base, PerformanceSnapshotRow, RevisionItemRow

DEFAULT_SNAPSHOT_LIMIT = 100


# =============================================================================
# Protocol
# =============================================================================


@runtime_checkable
class RevisionStore(Protocol):
    """Storage collaborator: get/put items, append/read snapshots."""

    def get_item(self, learner_id: str, item_id: str) -> RevisionItem | None: ...

    def put_item(self, item: RevisionItem) -> None: ...

    def list_items(self, learner_id: str) -> list[RevisionItem]: ...

    def append_snapshot(
        self,
        learner_id: str,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None: ...

    def record_review(
        self,
        item: RevisionItem,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        """Write the reviewed item and its snapshot together, or neither."""
        ...

    def recent_snapshots(
        self,
        learner_id: str,
        limit: int | None = None,
        item_id: str | None = None,
    ) -> list[PerformanceSnapshot]: ...

    def learners(self) -> list[str]: ...


# =============================================================================
# In-memory store
# =============================================================================


class InMemoryStore:
    """Thread-safe, process-local store."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, RevisionItem]] = defaultdict(dict)
        self._snapshots: dict[str, deque[PerformanceSnapshot]] = defaultdict(deque)
        self._lock = threading.RLock()

    def get_item(self, learner_id: str, item_id: str) -> RevisionItem | None:
        with self._lock:
            return self._items.get(learner_id, {}).get(item_id)

    def put_item(self, item: RevisionItem) -> None:
        with self._lock:
            self._items[item.owner_id][item.item_id] = item

    def list_items(self, learner_id: str) -> list[RevisionItem]:
        with self._lock:
            return list(self._items.get(learner_id, {}).values())

    def append_snapshot(
        self,
        learner_id: str,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        with self._lock:
            self._append(learner_id, snapshot, max_history)

    def record_review(
        self,
        item: RevisionItem,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        with self._lock:
            # Snapshot first: the item is only replaced once the append succeeded
            self._append(item.owner_id, snapshot, max_history)
            self._items[item.owner_id][item.item_id] = item

    def _append(self, learner_id: str, snapshot: PerformanceSnapshot, max_history: int) -> None:
        history = self._snapshots[learner_id]
        history.append(snapshot)
        while len(history) > max_history:
            history.popleft()

    def recent_snapshots(
        self,
        learner_id: str,
        limit: int | None = None,
        item_id: str | None = None,
    ) -> list[PerformanceSnapshot]:
        with self._lock:
            history = list(self._snapshots.get(learner_id, ()))
        if item_id is not None:
            history = [s for s in history if s.item_id == item_id]
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    def learners(self) -> list[str]:
        with self._lock:
            return sorted(set(self._items) | set(self._snapshots))


# =============================================================================
# SQL store
# =============================================================================


class SqlStateStore:
    """
    SQLAlchemy-backed state persistence.

    Items are stored as JSON documents; every SQLAlchemy failure is
    raised as StorageError.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the store and create tables.

        Args:
            database_url: SQLAlchemy URL (parent directory is created for SQLite files)
            echo: Log emitted SQL
        """
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

        self.database_url = database_url
        try:
            self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialize store at {url!r}: {e}") from e
        self._session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        logger.debug(f"SqlStateStore initialized at {url!r}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Storage operation failed: {e}") from e
        finally:
            session.close()

    # =========================================================================
    # Items
    # =========================================================================

    def get_item(self, learner_id: str, item_id: str) -> RevisionItem | None:
        with self.session_scope() as session:
            row = session.get(RevisionItemRow, (learner_id, item_id))
            if row is None:
                return None
            return RevisionItem.model_validate(row.payload)

    def put_item(self, item: RevisionItem) -> None:
        with self.session_scope() as session:
            self._write_item(session, item)

    @staticmethod
    def _write_item(session: Session, item: RevisionItem) -> None:
        row = session.get(RevisionItemRow, (item.owner_id, item.item_id))
        if row is None:
            row = RevisionItemRow(learner_id=item.owner_id, item_id=item.item_id)
            session.add(row)
        row.subject = item.subject
        row.next_due_at = item.next_due_at
        row.updated_at = item.updated_at
        row.payload = item.model_dump(mode="json")

    def list_items(self, learner_id: str) -> list[RevisionItem]:
        with self.session_scope() as session:
            rows = session.scalars(
                select(RevisionItemRow)
                .where(RevisionItemRow.learner_id == learner_id)
                .order_by(RevisionItemRow.item_id)
            ).all()
            return [RevisionItem.model_validate(row.payload) for row in rows]

    # =========================================================================
    # Snapshots
    # =========================================================================

    def append_snapshot(
        self,
        learner_id: str,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        with self.session_scope() as session:
            self._write_snapshot(session, learner_id, snapshot, max_history)

    def record_review(
        self,
        item: RevisionItem,
        snapshot: PerformanceSnapshot,
        max_history: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        """Item update and snapshot append in a single transaction."""
        with self.session_scope() as session:
            self._write_item(session, item)
            self._write_snapshot(session, item.owner_id, snapshot, max_history)

    @staticmethod
    def _write_snapshot(
        session: Session,
        learner_id: str,
        snapshot: PerformanceSnapshot,
        max_history: int,
    ) -> None:
        session.add(
            PerformanceSnapshotRow(
                learner_id=learner_id,
                item_id=snapshot.item_id,
                recorded_at=snapshot.timestamp,
                payload=snapshot.to_dict(),
            )
        )
        session.flush()

        count = session.scalar(
            select(func.count())
            .select_from(PerformanceSnapshotRow)
            .where(PerformanceSnapshotRow.learner_id == learner_id)
        )
        overflow = (count or 0) - max_history
        if overflow > 0:
            oldest = session.scalars(
                select(PerformanceSnapshotRow.id)
                .where(PerformanceSnapshotRow.learner_id == learner_id)
                .order_by(PerformanceSnapshotRow.id)
                .limit(overflow)
            ).all()
            session.execute(
                delete(PerformanceSnapshotRow).where(PerformanceSnapshotRow.id.in_(oldest))
            )

    def recent_snapshots(
        self,
        learner_id: str,
        limit: int | None = None,
        item_id: str | None = None,
    ) -> list[PerformanceSnapshot]:
        query = select(PerformanceSnapshotRow).where(PerformanceSnapshotRow.learner_id == learner_id)
        if item_id is not None:
            query = query.where(PerformanceSnapshotRow.item_id == item_id)
        query = query.order_by(PerformanceSnapshotRow.id.desc())
        if limit is not None:
            query = query.limit(max(0, limit))

        with self.session_scope() as session:
            rows = session.scalars(query).all()
            return [PerformanceSnapshot.from_dict(row.payload) for row in reversed(rows)]

    def learners(self) -> list[str]:
        with self.session_scope() as session:
            item_learners = session.scalars(select(RevisionItemRow.learner_id).distinct()).all()
            snapshot_learners = session.scalars(
                select(PerformanceSnapshotRow.learner_id).distinct()
            ).all()
        return sorted(set(item_learners) | set(snapshot_learners))

    def close(self) -> None:
        """Dispose of pooled connections."""
        self.engine.dispose()
