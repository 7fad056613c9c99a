"""
Unit tests for the retention model (forgetting curve, memory strength, readiness).
"""

from datetime import date, timedelta

import pytest

from revision_scheduler.core.models import ContentType, PerformanceSnapshot
from revision_scheduler.study.retention_model import (
    FORGETTING_HORIZONS_HOURS,
    RetentionModel,
)


def _snapshot(accuracy: float, retention: float, when) -> PerformanceSnapshot:
    return PerformanceSnapshot(
        timestamp=when,
        item_id="item-1",
        accuracy=accuracy,
        speed=1.0,
        confidence=3,
        streak_at_time=0,
        context_tag="medium-concept-Polity",
        retention_score=retention,
    )


class TestStability:
    def test_new_item_stability(self, make_item):
        # 5 base + (2.5 - 1.3) * 2 ease bonus
        assert RetentionModel().stability_days(make_item()) == pytest.approx(7.4)

    def test_hard_items_are_less_stable(self, make_item):
        model = RetentionModel()
        medium = model.stability_days(make_item())
        hard = model.stability_days(make_item(difficulty_tier="hard"))
        assert hard == pytest.approx(medium * 0.8)


class TestForgettingCurve:
    def test_curve_starts_at_stored_retention(self, make_item):
        item = make_item(retention_score=80.0)
        assert RetentionModel().predict_retention(item, 0) == pytest.approx(80.0)

    def test_curve_is_non_increasing(self, make_item):
        item = make_item(retention_score=92.0, recall_accuracy=80.0, repetition_count=3)
        points = RetentionModel().forgetting_curve(item)

        assert [p.hours_elapsed for p in points] == list(FORGETTING_HORIZONS_HOURS)
        values = [p.predicted_retention for p in points]
        assert values == sorted(values, reverse=True)
        assert all(0.0 <= v <= 100.0 for v in values)

    def test_confusion_prone_content_clamps_at_zero(self, make_item):
        item = make_item(retention_score=10.0, content_type=ContentType.CURRENT_AFFAIRS)
        assert RetentionModel().predict_retention(item, 720) == 0.0

    def test_never_reviewed_item_has_no_retention(self, make_item):
        point = RetentionModel().forgetting_curve(make_item(), horizons=(24,))[0]
        assert point.predicted_retention == 0.0
        assert point.recommended_action == "Revise"

    def test_current_retention_uses_hours_since_review(self, make_item, fixed_now):
        model = RetentionModel()
        item = make_item(retention_score=85.0, last_reviewed_at=fixed_now - timedelta(hours=24))
        assert model.current_retention(item, fixed_now) == pytest.approx(model.predict_retention(item, 24))

    @pytest.mark.parametrize(
        "retention,action",
        [(30.0, "Revise"), (59.9, "Revise"), (60.0, "Review"), (85.0, "Test"), (95.0, "Skip")],
    )
    def test_recommended_action(self, retention, action):
        assert RetentionModel.recommended_action(retention) == action


class TestCriticalInterval:
    def test_critical_interval(self, make_item):
        assert RetentionModel().critical_interval_days(make_item(), 0.85) == pytest.approx(1.2026, abs=1e-3)

    @pytest.mark.parametrize("target", [0.0, 1.0, -0.2, 1.5])
    def test_invalid_target_rejected(self, make_item, target):
        with pytest.raises(ValueError):
            RetentionModel().critical_interval_days(make_item(), target)


class TestMemoryStrength:
    def test_empty_history_uses_default(self):
        assert RetentionModel().memory_strength([]) == 50.0

    def test_only_recent_window_counts(self, fixed_now):
        old = [_snapshot(0.0, 0.0, fixed_now) for _ in range(5)]
        recent = [_snapshot(80.0, 60.0, fixed_now) for _ in range(10)]
        assert RetentionModel().memory_strength(old + recent) == 70.0


class TestExamReadiness:
    @pytest.fixture
    def history(self, fixed_now):
        return [_snapshot(80.0, 60.0, fixed_now) for _ in range(4)]

    def test_full_preparation_time(self, history):
        readiness = RetentionModel().exam_readiness(history, date(2026, 6, 1), date(2026, 3, 3))
        assert readiness == 70.0

    def test_exam_today_is_defined(self, history):
        readiness = RetentionModel().exam_readiness(history, date(2026, 3, 2), date(2026, 3, 2))
        assert readiness == 49.0

    def test_past_exam_matches_exam_today(self, history):
        model = RetentionModel()
        past = model.exam_readiness(history, date(2026, 2, 1), date(2026, 3, 2))
        assert past == model.exam_readiness(history, date(2026, 3, 2), date(2026, 3, 2))

    def test_no_history(self):
        readiness = RetentionModel().exam_readiness([], date(2026, 4, 16), date(2026, 3, 2))
        # 50 * (0.7 + 0.3 * 45/90)
        assert readiness == 42.5
