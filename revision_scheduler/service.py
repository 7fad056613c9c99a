"""
Revision Service.

High-level operations used by the CLI and the HTTP API:
- Record a review (adapt tier, compute next interval, persist)
- List due items and build daily / catch-up schedules
- Predict forgetting and exam readiness
- Difficulty recommendations and learner insights

Reviews of the same (learner, item) are serialized with a per-key lock.
Schedule generation reads a point-in-time list of items and takes no
item locks.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from revision_scheduler.adaptive.difficulty_adapter import (
    DifficultyAdapter,
    DifficultyProfile,
    FlowState,
    TierDecision,
)
from revision_scheduler.core.errors import ConfigurationError, NotFoundError
from revision_scheduler.core.mastery import ensure_utc, utc_now
from revision_scheduler.core.models import (
    PerformanceSnapshot,
    ReviewEvent,
    RevisionItem,
    ScheduleSession,
    SchedulePreferences,
)
from revision_scheduler.delivery.schedule_builder import (
    ScheduleBuilder,
    schedule_priority,
    sort_by_urgency,
)
from revision_scheduler.delivery.state_store import DEFAULT_SNAPSHOT_LIMIT, RevisionStore
from revision_scheduler.study.interval_scheduler import IntervalScheduler
from revision_scheduler.study.retention_model import ForgettingPoint, RetentionModel

if TYPE_CHECKING:
    from config import Settings


@dataclass
class LearnerInsights:
    """Difficulty profile, flow and memory strength of a learner."""

    learner_id: str
    profile: DifficultyProfile
    flow: FlowState
    memory_strength: float
    recommendations: dict[str, TierDecision] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "profile": self.profile.to_dict(),
            "flow": self.flow.to_dict(),
            "memory_strength": self.memory_strength,
            "recommendations": {k: v.to_dict() for k, v in self.recommendations.items()},
        }


class RevisionService:
    """Orchestrates the revision engines over a storage collaborator."""

    def __init__(
        self,
        store: RevisionStore,
        scheduler: IntervalScheduler | None = None,
        adapter: DifficultyAdapter | None = None,
        builder: ScheduleBuilder | None = None,
        snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the service.

        Args:
            store: Item / snapshot storage
            scheduler: Interval scheduler (defaults if None)
            adapter: Difficulty adapter (defaults if None)
            builder: Schedule builder (defaults if None)
            snapshot_limit: Snapshots kept per learner
            clock: Source of "now" for reviews without a timestamp
        """
        self.store = store
        self.scheduler = scheduler or IntervalScheduler()
        self.adapter = adapter or DifficultyAdapter()
        self.builder = builder or ScheduleBuilder()
        self.snapshot_limit = snapshot_limit
        self.clock = clock

        # Entries vanish once no review holds the lock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, store: RevisionStore) -> RevisionService:
        """Build a service wired with engine configuration from settings."""
        retention_model = RetentionModel()
        return cls(
            store=store,
            scheduler=IntervalScheduler(settings.scheduler_config(), retention_model),
            adapter=DifficultyAdapter(window_size=settings.adaptation_window),
            builder=ScheduleBuilder(settings.builder_config()),
            snapshot_limit=settings.snapshot_history_limit,
        )

    @property
    def retention_model(self) -> RetentionModel:
        return self.scheduler.retention_model

    @property
    def exam_date(self) -> date | None:
        return self.scheduler.config.exam_date

    def _lock_for(self, learner_id: str, item_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get((learner_id, item_id))
            if lock is None:
                lock = threading.Lock()
                self._locks[(learner_id, item_id)] = lock
            return lock

    def _require_learner(self, learner_id: str) -> None:
        """
        Raises:
            NotFoundError: If the store has no items or history for the learner
        """
        if learner_id not in self.store.learners():
            raise NotFoundError("Learner", learner_id)

    def _adaptation_window(
        self,
        item_id: str,
        history: Sequence[PerformanceSnapshot],
    ) -> list[PerformanceSnapshot]:
        """
        The item's own recent snapshots, or the learner's when it has none.

        Rule cooldowns belong to the item they fired for, so they are
        cleared from a learner-wide fallback window.
        """
        window = [s for s in history if s.item_id == item_id]
        if not window:
            window = [replace(s, adaptation_rule=None) for s in history]
        return window[-self.adapter.window_size :]

    def today(self) -> date:
        return ensure_utc(self.clock()).date()

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(self, item: RevisionItem | dict[str, Any]) -> RevisionItem:
        """
        Ingest a revision item (content ingestion hook).

        Existing items with the same (owner, id) are replaced.
        """
        if not isinstance(item, RevisionItem):
            item = RevisionItem.model_validate(item)
        with self._lock_for(item.owner_id, item.item_id):
            self.store.put_item(item)
        logger.debug(f"Item {item.item_id} stored for learner {item.owner_id}")
        return item

    def get_item(self, learner_id: str, item_id: str) -> RevisionItem:
        """
        Raises:
            NotFoundError: If the learner has no such item
        """
        item = self.store.get_item(learner_id, item_id)
        if item is None:
            raise NotFoundError("Revision item", f"{learner_id}/{item_id}")
        return item

    def list_items(self, learner_id: str) -> list[RevisionItem]:
        self._require_learner(learner_id)
        return self.store.list_items(learner_id)

    # =========================================================================
    # Reviews
    # =========================================================================

    def record_review(
        self,
        learner_id: str,
        item_id: str,
        event: ReviewEvent | dict[str, Any],
    ) -> RevisionItem:
        """
        Apply one review to an item and persist the result.

        Args:
            learner_id: Owner of the item
            item_id: Reviewed item
            event: Review event (validated before any state is touched)

        Returns:
            The updated item

        Raises:
            ReviewValidationError: If the event is malformed
            NotFoundError: If the item does not exist
            StorageError: If the store fails
        """
        event = ReviewEvent.parse(event)

        with self._lock_for(learner_id, item_id):
            item = self.get_item(learner_id, item_id)
            reviewed_at = ensure_utc(event.reviewed_at or self.clock())

            item_history = self.store.recent_snapshots(
                learner_id, limit=self.snapshot_limit, item_id=item_id
            )
            snapshot = self.adapter.snapshot_from_review(
                item, event, item_history, timestamp=reviewed_at
            )
            decision = self.adapter.decide(
                [*item_history, snapshot], item.difficulty_tier, now=reviewed_at
            )

            outcome = self.scheduler.compute_next_state(
                item, event, tier=decision.next_tier, now=reviewed_at
            )
            updated = self.scheduler.apply(item, outcome)
            snapshot = replace(
                snapshot,
                retention_score=outcome.retention_score,
                adaptation_rule=decision.rule_id if decision.changed else None,
            )

            self.store.record_review(updated, snapshot, self.snapshot_limit)

        if decision.changed:
            logger.info(
                f"Tier for {item_id} changed {decision.current_tier.value} -> "
                f"{decision.next_tier.value} ({decision.rule_id})"
            )
        logger.info(
            f"Review recorded for {learner_id}/{item_id}: {event.self_rating.value}, "
            f"next in {outcome.interval_days}d, mastery {updated.mastery_level.value}"
        )
        return updated

    # =========================================================================
    # Scheduling
    # =========================================================================

    def get_due_items(self, learner_id: str, as_of: date | None = None) -> list[RevisionItem]:
        """
        Items due on or before as_of, most urgent first.

        Raises:
            NotFoundError: If the learner is unknown
        """
        self._require_learner(learner_id)
        as_of = as_of or self.today()
        items = self.store.list_items(learner_id)
        return sort_by_urgency((i for i in items if i.is_due(as_of)), as_of)

    def recommend_tiers(self, learner_id: str) -> dict[str, TierDecision]:
        """
        Rule-table tier decision per item.

        Each item is judged on its own recent snapshots; items never
        reviewed fall back to the learner's recent window.

        Raises:
            NotFoundError: If the learner is unknown
        """
        self._require_learner(learner_id)
        return self._tier_decisions(learner_id, self.store.list_items(learner_id))

    def _tier_decisions(
        self,
        learner_id: str,
        items: Sequence[RevisionItem],
    ) -> dict[str, TierDecision]:
        history = self.store.recent_snapshots(learner_id, limit=self.snapshot_limit)
        now = ensure_utc(self.clock())
        return {
            item.item_id: self.adapter.decide(
                self._adaptation_window(item.item_id, history), item.difficulty_tier, now=now
            )
            for item in items
        }

    def build_schedule(
        self,
        learner_id: str,
        day: date | None = None,
        preferences: SchedulePreferences | None = None,
        now: datetime | None = None,
    ) -> list[ScheduleSession]:
        """
        Build a learner's sessions for a day from a point-in-time item list.

        Raises:
            NotFoundError: If the learner is unknown
        """
        self._require_learner(learner_id)
        day = day or self.today()
        items = self.store.list_items(learner_id)
        overrides = {
            item_id: decision.next_tier
            for item_id, decision in self._tier_decisions(learner_id, items).items()
            if decision.changed
        }
        return self.builder.build_daily_schedule(
            items,
            day,
            preferences,
            exam_date=self.exam_date,
            tier_overrides=overrides,
            now=now,
        )

    def schedule_priority(self, learner_id: str, day: date | None = None) -> str:
        """High / Medium / Low urgency of the learner's due workload."""
        day = day or self.today()
        return schedule_priority(self.get_due_items(learner_id, day), day)

    def build_catch_up(
        self,
        learner_id: str,
        day: date | None,
        missed_item_ids: Sequence[str],
        preferences: SchedulePreferences | None = None,
        existing: Sequence[ScheduleSession] | None = None,
    ) -> list[ScheduleSession]:
        """
        Place missed items into catch-up sessions around the day's schedule.

        Raises:
            NotFoundError: If the learner or a missed item does not exist
        """
        self._require_learner(learner_id)
        day = day or self.today()
        missed = [self.get_item(learner_id, item_id) for item_id in missed_item_ids]
        if existing is None:
            existing = self.build_schedule(learner_id, day, preferences)
        return self.builder.build_catch_up_sessions(missed, day, existing, preferences)

    # =========================================================================
    # Prediction
    # =========================================================================

    def predict_forgetting(self, learner_id: str, item_id: str) -> list[ForgettingPoint]:
        """Forgetting curve of one item at the standard horizons."""
        return self.retention_model.forgetting_curve(self.get_item(learner_id, item_id))

    def get_exam_readiness(
        self,
        learner_id: str,
        exam_date: date | None = None,
        today: date | None = None,
    ) -> float:
        """
        Exam readiness percentage (0-100).

        Raises:
            NotFoundError: If the learner is unknown
            ConfigurationError: If no exam date is given or configured
        """
        self._require_learner(learner_id)
        exam_date = exam_date or self.exam_date
        if exam_date is None:
            raise ConfigurationError("No exam date given or configured")
        history = self.store.recent_snapshots(learner_id)
        return self.retention_model.exam_readiness(history, exam_date, today or self.today())

    def difficulty_insights(self, learner_id: str) -> LearnerInsights:
        """Profile, flow state, memory strength and per-item tier recommendations."""
        self._require_learner(learner_id)
        history = self.store.recent_snapshots(learner_id)
        return LearnerInsights(
            learner_id=learner_id,
            profile=self.adapter.build_profile(history),
            flow=self.adapter.flow_state(history),
            memory_strength=self.retention_model.memory_strength(history),
            recommendations=self.recommend_tiers(learner_id),
        )
