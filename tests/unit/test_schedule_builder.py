"""
Unit tests for ScheduleBuilder: selection, interleaving, windows and catch-up.
"""

from datetime import UTC, date, datetime, time, timedelta

import pytest

from revision_scheduler.core.mastery import MasteryLevel
from revision_scheduler.core.models import (
    DifficultyTier,
    ImportanceTier,
    SchedulePreferences,
    SessionType,
)
from revision_scheduler.delivery.schedule_builder import (
    BuilderConfig,
    ExamPhase,
    ScheduleBuilder,
    schedule_priority,
    sort_by_urgency,
)

IMPORTANCE_CYCLE = [ImportanceTier.LOW, ImportanceTier.CRITICAL, ImportanceTier.MEDIUM, ImportanceTier.HIGH]


@pytest.fixture
def due_items(make_item, fixed_now):
    """20 overdue items, each in its own subject, all at the same tier."""
    return [
        make_item(
            f"item-{i:02d}",
            subject=f"S{i:02d}",
            next_due_at=fixed_now - timedelta(days=i % 5),
            importance_tier=IMPORTANCE_CYCLE[i % 4],
        )
        for i in range(20)
    ]


def _no_overlap(sessions) -> bool:
    return all(
        not a.overlaps(b) for i, a in enumerate(sessions) for b in sessions[i + 1 :]
    )


class TestDailySchedule:
    def test_morning_session_capacity_and_order(self, due_items, today):
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today)

        morning = sessions[0]
        assert morning.session_type is SessionType.MORNING_INTENSIVE
        assert morning.item_count <= 15
        assert morning.window_start == datetime(2026, 3, 2, 7, 0, tzinfo=UTC)

        by_id = {item.item_id: item for item in due_items}
        keys = [
            (by_id[i].days_overdue(today), by_id[i].importance_tier.weight)
            for i in morning.ordered_item_ids
        ]
        assert keys == sorted(keys, reverse=True)

    def test_each_item_placed_once(self, due_items, today):
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today)
        placed = [item_id for s in sessions for item_id in s.ordered_item_ids]

        assert len(placed) == len(set(placed))
        assert set(placed) == {item.item_id for item in due_items}

    def test_sessions_never_overlap(self, due_items, today):
        prefs = SchedulePreferences(morning_time=time(16, 0), subject_cycle_time=time(16, 0))
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today, prefs)

        assert len(sessions) == 2
        assert _no_overlap(sessions)
        assert sessions[1].window_start == sessions[0].window_end

    def test_session_crossing_midnight_is_dropped(self, due_items, today):
        prefs = SchedulePreferences(morning_time=time(23, 45))
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today, prefs)

        midnight = datetime(2026, 3, 3, tzinfo=UTC)
        assert all(s.window_end <= midnight for s in sessions)
        assert SessionType.MORNING_INTENSIVE not in {s.session_type for s in sessions}

    def test_sessions_start_after_now(self, due_items, today, fixed_now):
        now = fixed_now.replace(hour=17, minute=0)
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today, now=now)

        assert sessions
        assert all(s.window_start >= now for s in sessions)
        assert _no_overlap(sessions)

    def test_morning_prefers_hard_or_struggling(self, make_item, fixed_now, today):
        items = [
            make_item("easy-1", next_due_at=fixed_now, subject="A"),
            make_item("hard-1", next_due_at=fixed_now, subject="B", difficulty_tier="hard"),
            make_item("struggle-1", next_due_at=fixed_now, subject="C", struggling_count=1),
        ]
        prefs = SchedulePreferences(session_minutes={SessionType.MORNING_INTENSIVE: 4})
        sessions = ScheduleBuilder().build_daily_schedule(items, today, prefs)

        morning = sessions[0]
        assert set(morning.ordered_item_ids) == {"hard-1", "struggle-1"}

    def test_preferred_items_still_run_in_urgency_order(self, make_item, fixed_now, today):
        # Subject A items are hard (preferred by the morning session) but less overdue
        items = [
            make_item(
                f"i{n}",
                subject="A" if n % 2 else "B",
                difficulty_tier="hard" if n % 2 else ["easy", "medium"][n % 4 // 2],
                next_due_at=fixed_now - timedelta(days=20 - n),
            )
            for n in range(10)
        ]
        sessions = ScheduleBuilder().build_daily_schedule(items, today)

        morning = sessions[0]
        assert morning.session_type is SessionType.MORNING_INTENSIVE
        assert morning.ordered_item_ids == [f"i{n}" for n in range(10)]

    def test_importance_orders_equally_overdue_items(self, make_item, fixed_now, today):
        items = [
            make_item("hard-low", subject="A", difficulty_tier="hard", importance_tier="low",
                      next_due_at=fixed_now - timedelta(days=2)),
            make_item("easy-critical", subject="B", difficulty_tier="easy", importance_tier="critical",
                      next_due_at=fixed_now - timedelta(days=2)),
            make_item("hard-fresh", subject="C", difficulty_tier="hard", next_due_at=fixed_now),
        ]
        sessions = ScheduleBuilder().build_daily_schedule(items, today)
        assert sessions[0].ordered_item_ids == ["easy-critical", "hard-low", "hard-fresh"]

    def test_interleaving_stays_within_equal_urgency(self, make_item, fixed_now, today):
        items = [
            make_item("a1", subject="A", next_due_at=fixed_now - timedelta(days=5)),
            make_item("a2", subject="A", next_due_at=fixed_now - timedelta(days=4)),
            make_item("a3", subject="A", next_due_at=fixed_now - timedelta(days=3)),
            make_item("b1", subject="B", next_due_at=fixed_now),
        ]
        sessions = ScheduleBuilder().build_daily_schedule(items, today)
        assert sessions[0].ordered_item_ids == ["a1", "a2", "a3", "b1"]

    def test_equally_urgent_items_are_interleaved(self, make_item, fixed_now, today):
        items = [
            make_item("a1", subject="A", next_due_at=fixed_now - timedelta(days=1)),
            make_item("a2", subject="A", next_due_at=fixed_now - timedelta(days=1)),
            make_item("a3", subject="A", next_due_at=fixed_now - timedelta(days=1)),
            make_item("b1", subject="B", difficulty_tier="easy", next_due_at=fixed_now - timedelta(days=1)),
        ]
        sessions = ScheduleBuilder().build_daily_schedule(items, today)
        assert sessions[0].ordered_item_ids == ["a1", "a2", "b1", "a3"]

    def test_tier_overrides_drive_preferences(self, make_item, fixed_now, today):
        items = [
            make_item("a", next_due_at=fixed_now, subject="A"),
            make_item("b", next_due_at=fixed_now, subject="B"),
        ]
        prefs = SchedulePreferences(session_minutes={SessionType.MORNING_INTENSIVE: 2})
        sessions = ScheduleBuilder().build_daily_schedule(
            items, today, prefs, tier_overrides={"b": DifficultyTier.HARD}
        )
        assert sessions[0].ordered_item_ids == ["b"]

    def test_evening_prefers_reviewing_items(self, make_item, fixed_now, today):
        items = [
            make_item("learning", next_due_at=fixed_now, subject="A"),
            make_item("reviewing", next_due_at=fixed_now, subject="B", mastery_level=MasteryLevel.REVIEWING),
        ]
        prefs = SchedulePreferences(
            session_minutes={SessionType.MORNING_INTENSIVE: 0, SessionType.SUBJECT_CYCLE: 0}
        )
        sessions = ScheduleBuilder().build_daily_schedule(items, today, prefs)

        assert [s.session_type for s in sessions] == [SessionType.EVENING_RECALL]
        assert sessions[0].ordered_item_ids[0] == "reviewing"

    def test_weekend_session_only_on_weekends(self, due_items):
        saturday = date(2026, 3, 7)
        monday = date(2026, 3, 2)
        builder = ScheduleBuilder()
        prefs = SchedulePreferences(
            session_minutes={SessionType.MORNING_INTENSIVE: 0, SessionType.SUBJECT_CYCLE: 0}
        )

        weekend_types = {s.session_type for s in builder.build_daily_schedule(due_items, saturday, prefs)}
        weekday_types = {s.session_type for s in builder.build_daily_schedule(due_items, monday, prefs)}

        assert SessionType.WEEKEND_COMPREHENSIVE in weekend_types
        assert SessionType.WEEKEND_COMPREHENSIVE not in weekday_types

    def test_upcoming_items_follow_due_items(self, make_item, fixed_now, today):
        items = [
            make_item("soon", next_due_at=fixed_now + timedelta(days=2), subject="A"),
            make_item("due", next_due_at=fixed_now, subject="B"),
            make_item("later", next_due_at=fixed_now + timedelta(days=5), subject="C"),
        ]
        sessions = ScheduleBuilder().build_daily_schedule(items, today)
        placed = [i for s in sessions for i in s.ordered_item_ids]

        assert placed == ["due", "soon"]

    def test_upcoming_can_be_disabled(self, make_item, fixed_now, today):
        items = [make_item("soon", next_due_at=fixed_now + timedelta(days=2))]
        prefs = SchedulePreferences(include_upcoming=False)
        assert ScheduleBuilder().build_daily_schedule(items, today, prefs) == []

    def test_daily_budget_caps_total_minutes(self, due_items, today):
        prefs = SchedulePreferences(max_daily_minutes=40)
        sessions = ScheduleBuilder().build_daily_schedule(due_items, today, prefs)
        assert sum(s.estimated_duration_minutes for s in sessions) <= 40

    def test_empty_input(self, today):
        assert ScheduleBuilder().build_daily_schedule([], today) == []


class TestExamPhase:
    @pytest.mark.parametrize(
        "days_until_exam,phase",
        [(None, ExamPhase.NORMAL), (-1, ExamPhase.NORMAL), (0, ExamPhase.SPRINT), (7, ExamPhase.SPRINT),
         (8, ExamPhase.INTENSIVE), (30, ExamPhase.INTENSIVE), (31, ExamPhase.NORMAL)],
    )
    def test_phase_thresholds(self, today, days_until_exam, phase):
        exam_date = None if days_until_exam is None else today + timedelta(days=days_until_exam)
        assert ScheduleBuilder().exam_phase(today, exam_date) is phase

    def test_sprint_doubles_budget_and_skips_look_ahead(self, due_items, make_item, fixed_now, today):
        upcoming = make_item("upcoming", next_due_at=fixed_now + timedelta(days=1), subject="Z")
        sessions = ScheduleBuilder().build_daily_schedule(
            [*due_items, upcoming], today, exam_date=today + timedelta(days=3)
        )
        morning = sessions[0]
        placed = {i for s in sessions for i in s.ordered_item_ids}

        assert morning.item_count == 20
        assert "upcoming" not in placed

    def test_intensive_uses_one_day_look_ahead(self, make_item, fixed_now, today):
        items = [
            make_item("tomorrow", next_due_at=fixed_now + timedelta(days=1), subject="A"),
            make_item("in-two", next_due_at=fixed_now + timedelta(days=2), subject="B"),
        ]
        sessions = ScheduleBuilder().build_daily_schedule(
            items, today, exam_date=today + timedelta(days=20)
        )
        assert [i for s in sessions for i in s.ordered_item_ids] == ["tomorrow"]


class TestInterleave:
    def test_breaks_subject_runs(self, make_item):
        queue = [make_item(f"p{i}", subject="Polity", difficulty_tier=t) for i, t in
                 enumerate(["easy", "medium", "hard"])] + [make_item("e1", subject="Economy")]
        ordered = [i.item_id for i in ScheduleBuilder().interleave(queue)]
        assert ordered == ["p0", "p1", "e1", "p2"]

    def test_breaks_tier_runs(self, make_item):
        queue = [make_item(f"h{i}", subject=f"S{i}", difficulty_tier="hard") for i in range(3)]
        queue.append(make_item("m1", subject="S9", difficulty_tier="medium"))
        ordered = [i.item_id for i in ScheduleBuilder().interleave(queue)]
        assert ordered == ["h0", "h1", "m1", "h2"]

    def test_falls_back_to_queue_order(self, make_item):
        queue = [make_item(f"p{i}", subject="Polity") for i in range(4)]
        ordered = [i.item_id for i in ScheduleBuilder().interleave(queue)]
        assert ordered == ["p0", "p1", "p2", "p3"]

    def test_custom_run_limit(self, make_item):
        config = BuilderConfig(max_consecutive_same_subject=1, max_consecutive_same_tier=3)
        queue = [
            make_item("a1", subject="A"),
            make_item("a2", subject="A"),
            make_item("b1", subject="B"),
        ]
        ordered = [i.item_id for i in ScheduleBuilder(config).interleave(queue)]
        assert ordered == ["a1", "b1", "a2"]


class TestCatchUp:
    def test_missed_items_split_into_sessions(self, due_items, today):
        sessions = ScheduleBuilder().build_catch_up_sessions(due_items, today)

        assert [s.session_id for s in sessions] == ["catch_up-2026-03-02-1", "catch_up-2026-03-02-2"]
        assert sessions[0].item_count == 15
        assert sessions[1].item_count == 5
        assert sessions[0].window_start == datetime(2026, 3, 2, 21, 0, tzinfo=UTC)
        assert sessions[1].window_start == sessions[0].window_end

        weights = [
            next(i for i in due_items if i.item_id == item_id).importance_tier.weight
            for item_id in sessions[0].ordered_item_ids
        ]
        assert weights == sorted(weights, reverse=True)

    def test_catch_up_avoids_existing_sessions(self, due_items, make_item, fixed_now, today):
        prefs = SchedulePreferences(morning_time=time(21, 0))
        existing = ScheduleBuilder().build_daily_schedule(due_items[:5], today, prefs)
        missed = [make_item("missed", next_due_at=fixed_now - timedelta(days=2))]

        created = ScheduleBuilder().build_catch_up_sessions(missed, today, existing, prefs)

        assert len(created) == 1
        assert created[0].window_start == existing[0].window_end
        assert _no_overlap([*existing, *created])

    def test_items_already_scheduled_are_skipped(self, due_items, today):
        existing = ScheduleBuilder().build_daily_schedule(due_items[:3], today)
        assert ScheduleBuilder().build_catch_up_sessions(due_items[:3], today, existing) == []

    def test_no_slot_left_before_midnight(self, due_items, today):
        prefs = SchedulePreferences(catch_up_time=time(23, 50))
        assert ScheduleBuilder().build_catch_up_sessions(due_items, today, preferences=prefs) == []


class TestPriority:
    def test_many_overdue_is_high(self, make_item, fixed_now, today):
        items = [make_item(f"i{n}", next_due_at=fixed_now - timedelta(days=2)) for n in range(6)]
        assert schedule_priority(items, today) == "High"

    def test_some_overdue_is_medium(self, make_item, fixed_now, today):
        items = [make_item(f"i{n}", next_due_at=fixed_now - timedelta(days=2)) for n in range(3)]
        assert schedule_priority(items, today) == "Medium"

    def test_nothing_urgent_is_low(self, make_item, fixed_now, today):
        assert schedule_priority([make_item(next_due_at=fixed_now)], today) == "Low"

    def test_urgency_sort_prefers_overdue_then_importance(self, make_item, fixed_now, today):
        items = [
            make_item("critical-today", next_due_at=fixed_now, importance_tier="critical"),
            make_item("low-overdue", next_due_at=fixed_now - timedelta(days=3), importance_tier="low"),
            make_item("high-today", next_due_at=fixed_now, importance_tier="high"),
        ]
        assert [i.item_id for i in sort_by_urgency(items, today)] == [
            "low-overdue",
            "critical-today",
            "high-today",
        ]
