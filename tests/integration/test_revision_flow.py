"""
Integration tests for RevisionService over real stores.

Exercises the full review -> adapt -> schedule -> persist flow, concurrent
reviews and snapshot history limits.
"""

import gc
import threading
from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from config import Settings
from revision_scheduler.core.errors import (
    ConfigurationError,
    NotFoundError,
    ReviewValidationError,
    StorageError,
)
from revision_scheduler.core.models import DifficultyTier
from revision_scheduler.delivery.state_store import InMemoryStore, SqlStateStore
from revision_scheduler.service import RevisionService

REVIEW = {"self_rating": "good", "confidence": 3, "time_spent_seconds": 20}
STRONG_REVIEW = {"self_rating": "good", "confidence": 4, "time_spent_seconds": 20}


@pytest.fixture(params=["memory", "sql"])
def service(request, tmp_path, fixed_now):
    if request.param == "memory":
        store = InMemoryStore()
    else:
        store = SqlStateStore(f"sqlite:///{tmp_path / 'state.db'}")
    yield RevisionService(store, clock=lambda: fixed_now)
    if request.param == "sql":
        store.close()


class TestReviewFlow:
    def test_first_review_schedules_item(self, service, make_item, fixed_now):
        service.add_item(make_item())
        updated = service.record_review("alice", "item-1", REVIEW)

        assert updated.interval_days == 3
        assert updated.next_due_at == fixed_now + timedelta(days=3)
        assert service.get_item("alice", "item-1") == updated
        assert len(service.store.recent_snapshots("alice")) == 1

    def test_snapshot_records_post_review_retention(self, service, make_item):
        service.add_item(make_item())
        updated = service.record_review("alice", "item-1", REVIEW)
        snapshot = service.store.recent_snapshots("alice")[-1]
        assert snapshot.retention_score == updated.retention_score

    def test_high_accuracy_streak_raises_tier(self, service, make_item):
        service.add_item(make_item())
        tiers = [
            service.record_review("alice", "item-1", STRONG_REVIEW).difficulty_tier for _ in range(3)
        ]
        assert tiers == [DifficultyTier.MEDIUM, DifficultyTier.MEDIUM, DifficultyTier.HARD]

    def test_invalid_review_leaves_state_untouched(self, service, make_item):
        item = make_item()
        service.add_item(item)
        with pytest.raises(ReviewValidationError):
            service.record_review("alice", "item-1", {"self_rating": "good", "confidence": 0})

        assert service.get_item("alice", "item-1") == item
        assert service.store.recent_snapshots("alice") == []

    def test_unknown_item(self, service):
        with pytest.raises(NotFoundError):
            service.record_review("alice", "ghost", REVIEW)

    def test_reviewed_item_leaves_due_list(self, service, make_item, today):
        service.add_item(make_item("a"))
        service.add_item(make_item("b"))
        service.record_review("alice", "a", REVIEW)

        assert [i.item_id for i in service.get_due_items("alice", today)] == ["b"]
        assert len(service.get_due_items("alice", today + timedelta(days=3))) == 2

    def test_failed_history_write_leaves_item_untouched(self, make_item, tmp_path, fixed_now, monkeypatch):
        store = SqlStateStore(f"sqlite:///{tmp_path / 'broken.db'}")
        service = RevisionService(store, clock=lambda: fixed_now)
        item = service.add_item(make_item())

        def fail(*args, **kwargs):
            raise OperationalError("INSERT INTO performance_snapshots", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "_write_snapshot", fail)
        with pytest.raises(StorageError):
            service.record_review("alice", "item-1", REVIEW)

        assert service.get_item("alice", "item-1") == item
        assert store.recent_snapshots("alice") == []
        store.close()


class TestUnknownLearner:
    @pytest.mark.parametrize(
        "operation",
        [
            lambda s: s.list_items("nobody"),
            lambda s: s.get_due_items("nobody", date(2026, 3, 2)),
            lambda s: s.build_schedule("nobody", date(2026, 3, 2)),
            lambda s: s.schedule_priority("nobody"),
            lambda s: s.build_catch_up("nobody", None, ["item-1"]),
            lambda s: s.get_exam_readiness("nobody", date(2026, 6, 1)),
            lambda s: s.recommend_tiers("nobody"),
            lambda s: s.difficulty_insights("nobody"),
        ],
        ids=["list", "due", "schedule", "priority", "catch-up", "readiness", "tiers", "insights"],
    )
    def test_raises_not_found(self, service, make_item, operation):
        service.add_item(make_item())
        with pytest.raises(NotFoundError) as exc_info:
            operation(service)
        assert "nobody" in str(exc_info.value)

    def test_learner_known_once_an_item_is_added(self, service, make_item, today):
        with pytest.raises(NotFoundError):
            service.get_due_items("alice", today)
        service.add_item(make_item())
        assert len(service.get_due_items("alice", today)) == 1


class TestAdaptationWindow:
    def test_other_items_do_not_change_a_fresh_item(self, service, make_item):
        for item_id in ("a", "b", "fresh"):
            service.add_item(make_item(item_id, subject="History"))
        easy = {"self_rating": "easy", "confidence": 5, "time_spent_seconds": 20}
        service.record_review("alice", "a", easy)
        service.record_review("alice", "b", easy)

        assert service.record_review("alice", "fresh", easy).difficulty_tier is DifficultyTier.MEDIUM

    def test_recommendations_use_each_items_history(self, service, make_item):
        for item_id in ("x", "y", "z"):
            service.add_item(make_item(item_id))
        service.record_review("alice", "z", {**REVIEW, "self_rating": "again"})
        for _ in range(3):
            service.record_review("alice", "x", STRONG_REVIEW)

        decisions = service.recommend_tiers("alice")
        # y was never reviewed, so it is judged on the learner's recent window
        assert decisions["y"].next_tier is DifficultyTier.HARD
        assert not decisions["z"].changed
        assert not decisions["x"].changed

    def test_tier_change_waits_for_cooldown(self, service, make_item, fixed_now):
        service.add_item(make_item(difficulty_tier="easy"))
        tiers = [
            service.record_review("alice", "item-1", STRONG_REVIEW).difficulty_tier for _ in range(4)
        ]
        assert tiers == [DifficultyTier.EASY, DifficultyTier.EASY, DifficultyTier.MEDIUM, DifficultyTier.MEDIUM]

        later = {**STRONG_REVIEW, "reviewed_at": (fixed_now + timedelta(hours=25)).isoformat()}
        assert service.record_review("alice", "item-1", later).difficulty_tier is DifficultyTier.HARD
        snapshots = service.store.recent_snapshots("alice")
        assert [s.adaptation_rule for s in snapshots] == [
            None, None, "high_accuracy_streak", None, "high_accuracy_streak",
        ]


class TestPlanning:
    def test_schedule_covers_due_items(self, service, make_item, fixed_now, today):
        for n in range(6):
            service.add_item(make_item(f"i{n}", subject=["Polity", "Economy"][n % 2],
                                       next_due_at=fixed_now - timedelta(days=n)))
        sessions = service.build_schedule("alice", today)
        placed = [i for s in sessions for i in s.ordered_item_ids]

        assert sorted(placed) == [f"i{n}" for n in range(6)]
        assert service.schedule_priority("alice", today) == "Medium"

    def test_catch_up_around_schedule(self, service, make_item, fixed_now, today):
        service.add_item(make_item("due", next_due_at=fixed_now))
        service.add_item(make_item("missed", next_due_at=fixed_now + timedelta(days=10)))

        created = service.build_catch_up("alice", today, ["missed"])
        assert [s.ordered_item_ids for s in created] == [["missed"]]

    def test_readiness_exam_today_is_defined(self, service, make_item):
        service.add_item(make_item())
        assert service.get_exam_readiness("alice", date(2026, 3, 2)) == 35.0

    def test_readiness_without_exam_date(self, service, make_item):
        service.add_item(make_item())
        with pytest.raises(ConfigurationError):
            service.get_exam_readiness("alice")

    def test_insights(self, service, make_item):
        service.add_item(make_item())
        for _ in range(3):
            service.record_review("alice", "item-1", STRONG_REVIEW)

        insights = service.difficulty_insights("alice")
        assert insights.profile.snapshot_count == 3
        assert insights.memory_strength > 50
        assert set(insights.to_dict()["recommendations"]) == {"item-1"}


class TestHistoryLimit:
    def test_snapshot_history_capped(self, make_item, fixed_now):
        service = RevisionService(InMemoryStore(), snapshot_limit=100, clock=lambda: fixed_now)
        service.add_item(make_item())
        for _ in range(105):
            service.record_review("alice", "item-1", REVIEW)

        assert len(service.store.recent_snapshots("alice")) == 100

    def test_sql_history_capped(self, make_item, fixed_now, tmp_path):
        store = SqlStateStore(f"sqlite:///{tmp_path / 'cap.db'}")
        service = RevisionService(store, snapshot_limit=5, clock=lambda: fixed_now)
        service.add_item(make_item())
        for _ in range(8):
            service.record_review("alice", "item-1", REVIEW)

        assert len(store.recent_snapshots("alice")) == 5
        store.close()


class TestConcurrency:
    def test_concurrent_reviews_are_serialized(self, make_item, fixed_now):
        service = RevisionService(InMemoryStore(), clock=lambda: fixed_now)
        service.add_item(make_item())
        errors: list[Exception] = []

        def worker():
            try:
                for _ in range(10):
                    service.record_review("alice", "item-1", REVIEW)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert service.get_item("alice", "item-1").repetition_count == 40
        assert len(service.store.recent_snapshots("alice")) == 40

    def test_lock_table_does_not_grow_with_items(self, make_item, fixed_now):
        service = RevisionService(InMemoryStore(), clock=lambda: fixed_now)
        for n in range(50):
            service.add_item(make_item(f"i{n}"))
            service.record_review("alice", f"i{n}", REVIEW)

        gc.collect()
        assert len(service._locks) == 0


class TestSettings:
    def test_service_from_settings(self, tmp_path):
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'settings.db'}",
            exam_date=date(2026, 5, 1),
            max_interval_days=30,
            snapshot_history_limit=50,
            subject_interval_multipliers={"Polity": 0.5},
        )
        store = SqlStateStore(settings.database_url)
        service = RevisionService.from_settings(settings, store)

        assert service.exam_date == date(2026, 5, 1)
        assert service.snapshot_limit == 50
        assert service.scheduler.config.max_interval_days == 30
        assert service.scheduler.config.subject_multipliers == {"Polity": 0.5}
        store.close()

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"
