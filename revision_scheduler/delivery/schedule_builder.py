"""
Daily Schedule Builder with Interleaving.

Implements:
- Due / upcoming item selection with exam-proximity look-ahead
- Named, time-boxed sessions with per-item capacity planning
- Urgency ordering (overdue, importance, struggles, staleness)
- Interleaving to prevent context collapse (subject and tier runs)
- Non-overlapping session windows and catch-up session placement

Session types (default budget, minutes per item, preference):
    morning_intensive      30 min  2/item  hard or struggling items
    subject_cycle          45 min  3/item  the day's focus subject
    weekend_comprehensive  60 min  3/item  weekends only, repetition >= 2
    evening_recall         15 min  1/item  items in the reviewing stage
    catch_up               30 min  2/item  missed items, from 21:00
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum

from loguru import logger

from revision_scheduler.core.mastery import MasteryLevel, ensure_utc
from revision_scheduler.core.models import (
    DifficultyTier,
    ImportanceTier,
    RevisionItem,
    ScheduleSession,
    SchedulePreferences,
    SessionType,
)

# =============================================================================
# Configuration
# =============================================================================


class ExamPhase(str, Enum):
    """Exam-proximity mode of a planning day."""

    NORMAL = "normal"
    INTENSIVE = "intensive"
    SPRINT = "sprint"


@dataclass
class BuilderConfig:
    """Configuration for daily schedule construction."""

    normal_look_ahead_days: int = 3
    intensive_look_ahead_days: int = 1
    sprint_look_ahead_days: int = 0
    sprint_threshold_days: int = 7
    intensive_threshold_days: int = 30
    sprint_budget_multiplier: float = 2.0
    intensive_budget_multiplier: float = 1.5
    max_consecutive_same_subject: int = 2
    max_consecutive_same_tier: int = 2

    def look_ahead_days(self, phase: ExamPhase) -> int:
        return {
            ExamPhase.NORMAL: self.normal_look_ahead_days,
            ExamPhase.INTENSIVE: self.intensive_look_ahead_days,
            ExamPhase.SPRINT: self.sprint_look_ahead_days,
        }[phase]

    def budget_multiplier(self, phase: ExamPhase) -> float:
        return {
            ExamPhase.NORMAL: 1.0,
            ExamPhase.INTENSIVE: self.intensive_budget_multiplier,
            ExamPhase.SPRINT: self.sprint_budget_multiplier,
        }[phase]


# Planning order of the regular daily sessions
DAILY_SESSION_ORDER = (
    SessionType.MORNING_INTENSIVE,
    SessionType.SUBJECT_CYCLE,
    SessionType.WEEKEND_COMPREHENSIVE,
    SessionType.EVENING_RECALL,
)


# =============================================================================
# Ordering helpers
# =============================================================================


def urgency_key(item: RevisionItem, day: date) -> tuple:
    """Sort key: overdue desc, importance desc, struggles desc, last review asc."""
    if item.last_reviewed_at is None:
        staleness = (0, datetime.min.replace(tzinfo=UTC))
    else:
        staleness = (1, ensure_utc(item.last_reviewed_at))
    return (
        -item.days_overdue(day),
        -item.importance_tier.weight,
        -item.struggling_count,
        staleness,
    )


def urgency_group(item: RevisionItem, day: date) -> tuple:
    """Items sharing this key may be reordered by interleaving."""
    return (item.is_due(day), item.days_overdue(day), item.importance_tier.weight)


def sort_by_urgency(items: Iterable[RevisionItem], day: date) -> list[RevisionItem]:
    return sorted(items, key=lambda item: urgency_key(item, day))


def item_priority(item: RevisionItem, day: date) -> float:
    """Scalar urgency used for session priority scores."""
    return (
        item.importance_tier.weight * 10
        + min(item.days_overdue(day), 10) * 5
        + item.struggling_count * 3
    )


def schedule_priority(items: Sequence[RevisionItem], day: date) -> str:
    """
    Overall urgency label of a day's workload.

    Returns:
        "High", "Medium" or "Low"
    """
    overdue = sum(1 for item in items if item.days_overdue(day) > 0)
    critical = sum(1 for item in items if item.importance_tier is ImportanceTier.CRITICAL)
    struggling = sum(1 for item in items if item.struggling_count > 2)

    if overdue > 5 or critical > 3 or struggling > 2:
        return "High"
    if overdue > 2 or critical > 1 or struggling > 0:
        return "Medium"
    return "Low"


# =============================================================================
# Schedule Builder
# =============================================================================


class ScheduleBuilder:
    """
    Builds a day's revision sessions from a point-in-time list of items.

    Key principles:
    1. Due items always come before upcoming ones
    2. Session preferences pick which items join first, remaining due items fill the rest
    3. Within a session items run overdue desc, then importance desc
    4. Each item is placed in at most one session
    5. Among equally urgent items, never 3+ consecutive of the same subject or tier
    6. Session windows never overlap
    """

    def __init__(self, config: BuilderConfig | None = None):
        """
        Initialize the builder.

        Args:
            config: Scheduling configuration (uses defaults if None)
        """
        self.config = config or BuilderConfig()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def exam_phase(self, day: date, exam_date: date | None) -> ExamPhase:
        """Sprint within 7 days of the exam, intensive within 30."""
        if exam_date is None:
            return ExamPhase.NORMAL
        days_until_exam = (exam_date - day).days
        if days_until_exam < 0:
            return ExamPhase.NORMAL
        if days_until_exam <= self.config.sprint_threshold_days:
            return ExamPhase.SPRINT
        if days_until_exam <= self.config.intensive_threshold_days:
            return ExamPhase.INTENSIVE
        return ExamPhase.NORMAL

    def build_daily_schedule(
        self,
        items: Sequence[RevisionItem],
        day: date,
        preferences: SchedulePreferences | None = None,
        exam_date: date | None = None,
        tier_overrides: dict[str, DifficultyTier] | None = None,
        now: datetime | None = None,
    ) -> list[ScheduleSession]:
        """
        Build the day's sessions.

        Args:
            items: Learner's items (point-in-time copy)
            day: Planning day
            preferences: Session times and budgets (defaults if None)
            exam_date: Exam date driving the exam-proximity mode
            tier_overrides: Recommended tiers by item_id, used in place of stored tiers
            now: Sessions are not placed before this instant on the planning day

        Returns:
            Sessions sorted by start time; windows never overlap
        """
        preferences = preferences or SchedulePreferences()
        tiers = tier_overrides or {}
        phase = self.exam_phase(day, exam_date)
        multiplier = self.config.budget_multiplier(phase)
        look_ahead = self.config.look_ahead_days(phase)

        due = sort_by_urgency((i for i in items if i.is_due(day)), day)
        upcoming: list[RevisionItem] = []
        if preferences.include_upcoming and look_ahead > 0:
            horizon = day + timedelta(days=look_ahead)
            upcoming = sort_by_urgency(
                (i for i in items if not i.is_due(day) and i.next_due_at.date() <= horizon),
                day,
            )

        focus_subject = self.focus_subject(due or upcoming, day)
        daily_budget = math.floor(preferences.max_daily_minutes * multiplier)
        placed: set[str] = set()
        sessions: list[ScheduleSession] = []

        for session_type in DAILY_SESSION_ORDER:
            if session_type is SessionType.WEEKEND_COMPREHENSIVE and day.weekday() < 5:
                continue

            minutes = min(math.floor(preferences.minutes_for(session_type) * multiplier), daily_budget)
            capacity = minutes // session_type.minutes_per_item
            if capacity <= 0:
                continue

            prefers = self._preference(session_type, tiers, focus_subject)
            chosen = self._select(due, upcoming, placed, prefers, capacity)
            if not chosen:
                continue

            ordered = self.interleave(
                self._urgency_order(chosen, day),
                tiers,
                group_key=lambda item: urgency_group(item, day),
            )
            session = self._make_session(
                session_type=session_type,
                day=day,
                start=preferences.start_time(session_type),
                items=ordered,
                session_id=f"{session_type.value}-{day.isoformat()}",
            )
            session = self._place(session, sessions, day, now)
            if session is None:
                continue

            sessions.append(session)
            placed.update(session.ordered_item_ids)
            daily_budget -= session.estimated_duration_minutes

        sessions.sort(key=lambda s: s.window_start)
        logger.info(
            f"Schedule built for {day.isoformat()} ({phase.value}): {len(sessions)} sessions, "
            f"{len(placed)} of {len(due)} due + {len(upcoming)} upcoming items placed"
        )
        return sessions

    def build_catch_up_sessions(
        self,
        missed_items: Sequence[RevisionItem],
        day: date,
        existing: Sequence[ScheduleSession] = (),
        preferences: SchedulePreferences | None = None,
    ) -> list[ScheduleSession]:
        """
        Place missed items into dedicated catch-up sessions.

        Items are ordered by importance desc then struggles desc; sessions
        start at the catch-up time and move past existing sessions.
        Items already placed in an existing session are skipped.

        Returns:
            New catch-up sessions only (existing sessions are not modified)
        """
        preferences = preferences or SchedulePreferences()
        already_placed = {item_id for s in existing for item_id in s.ordered_item_ids}
        pending = sorted(
            (i for i in missed_items if i.item_id not in already_placed),
            key=lambda i: (-i.importance_tier.weight, -i.struggling_count),
        )

        minutes = preferences.minutes_for(SessionType.CATCH_UP)
        capacity = minutes // SessionType.CATCH_UP.minutes_per_item
        if capacity <= 0 or not pending:
            return []

        occupied = list(existing)
        created: list[ScheduleSession] = []
        start = preferences.start_time(SessionType.CATCH_UP)

        for index in range(0, len(pending), capacity):
            batch = pending[index : index + capacity]
            session = self._make_session(
                session_type=SessionType.CATCH_UP,
                day=day,
                start=start,
                items=batch,
                session_id=f"{SessionType.CATCH_UP.value}-{day.isoformat()}-{len(created) + 1}",
            )
            session = self._place(session, occupied, day, None)
            if session is None:
                dropped = len(pending) - index
                logger.warning(f"No free slot left on {day.isoformat()} for {dropped} missed items")
                break
            occupied.append(session)
            created.append(session)

        logger.info(f"Catch-up for {day.isoformat()}: {len(created)} sessions")
        return created

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @staticmethod
    def focus_subject(items: Sequence[RevisionItem], day: date) -> str | None:
        """Subject cycled through by day ordinal among the candidates' subjects."""
        subjects = sorted({item.subject for item in items})
        if not subjects:
            return None
        return subjects[day.toordinal() % len(subjects)]

    @staticmethod
    def _preference(
        session_type: SessionType,
        tiers: dict[str, DifficultyTier],
        focus_subject: str | None,
    ) -> Callable[[RevisionItem], bool]:
        def tier_of(item: RevisionItem) -> DifficultyTier:
            return tiers.get(item.item_id, item.difficulty_tier)

        if session_type is SessionType.MORNING_INTENSIVE:
            return lambda i: tier_of(i) is DifficultyTier.HARD or i.struggling_count > 0
        if session_type is SessionType.SUBJECT_CYCLE:
            return lambda i: i.subject == focus_subject
        if session_type is SessionType.WEEKEND_COMPREHENSIVE:
            return lambda i: i.repetition_count >= 2
        if session_type is SessionType.EVENING_RECALL:
            return lambda i: i.mastery_level is MasteryLevel.REVIEWING
        return lambda i: True

    @staticmethod
    def _select(
        due: list[RevisionItem],
        upcoming: list[RevisionItem],
        placed: set[str],
        prefers: Callable[[RevisionItem], bool],
        capacity: int,
    ) -> list[RevisionItem]:
        """
        Pick up to capacity items: preferred due items, then other due items,
        then upcoming. Only membership is decided here, not order.
        """
        available = [i for i in due if i.item_id not in placed]
        preferred = [i for i in available if prefers(i)]
        others = [i for i in available if not prefers(i)]
        later = [i for i in upcoming if i.item_id not in placed]
        return (preferred + others + later)[:capacity]

    @staticmethod
    def _urgency_order(items: Sequence[RevisionItem], day: date) -> list[RevisionItem]:
        """Due items before upcoming ones, each by urgency_key."""
        return sorted(items, key=lambda item: (not item.is_due(day), urgency_key(item, day)))

    # -------------------------------------------------------------------------
    # Interleaving
    # -------------------------------------------------------------------------

    def interleave(
        self,
        queue: Sequence[RevisionItem],
        tier_overrides: dict[str, DifficultyTier] | None = None,
        group_key: Callable[[RevisionItem], object] | None = None,
    ) -> list[RevisionItem]:
        """
        Apply interleaving constraints to prevent context collapse.

        Greedy and stable: at each step the earliest remaining item that
        does not extend a run beyond the limits is taken; when none
        qualifies the earliest remaining item is taken.

        Args:
            queue: Items in urgency order
            tier_overrides: Tiers to use in place of stored ones
            group_key: When given, items only move within the run of
                consecutive items sharing the head item's key, so the
                queue's order across keys is kept
        """
        if len(queue) <= 1:
            return list(queue)

        tiers = tier_overrides or {}
        result: list[RevisionItem] = []
        remaining = list(queue)

        while remaining:
            candidates = len(remaining)
            if group_key is not None:
                head = group_key(remaining[0])
                candidates = next(
                    (i for i, item in enumerate(remaining) if group_key(item) != head),
                    len(remaining),
                )
            # No valid option - take the most urgent one
            pick = next(
                (i for i in range(candidates) if self._can_add(result, remaining[i], tiers)),
                0,
            )
            result.append(remaining.pop(pick))

        return result

    def _can_add(
        self,
        queue: list[RevisionItem],
        item: RevisionItem,
        tiers: dict[str, DifficultyTier],
    ) -> bool:
        """Check if item can be appended without violating run limits."""
        limit = self.config.max_consecutive_same_subject
        recent = queue[-limit:]
        if len(recent) >= limit and all(r.subject == item.subject for r in recent):
            return False

        limit = self.config.max_consecutive_same_tier
        tier = tiers.get(item.item_id, item.difficulty_tier)
        recent = queue[-limit:]
        if len(recent) >= limit and all(tiers.get(r.item_id, r.difficulty_tier) is tier for r in recent):
            return False

        return True

    # -------------------------------------------------------------------------
    # Windows
    # -------------------------------------------------------------------------

    @staticmethod
    def _make_session(
        session_type: SessionType,
        day: date,
        start: time,
        items: Sequence[RevisionItem],
        session_id: str,
    ) -> ScheduleSession:
        duration = len(items) * session_type.minutes_per_item
        window_start = datetime.combine(day, start.replace(tzinfo=None), tzinfo=UTC)
        priority = sum(item_priority(i, day) for i in items) / len(items) if items else 0.0
        return ScheduleSession(
            session_id=session_id,
            window_start=window_start,
            window_end=window_start + timedelta(minutes=duration),
            session_type=session_type,
            ordered_item_ids=[i.item_id for i in items],
            estimated_duration_minutes=duration,
            priority_score=round(priority, 1),
        )

    @staticmethod
    def _place(
        session: ScheduleSession,
        occupied: Sequence[ScheduleSession],
        day: date,
        now: datetime | None,
    ) -> ScheduleSession | None:
        """
        Shift session past conflicting windows.

        Returns:
            The placed session, or None when it would cross midnight
        """
        duration = session.window_end - session.window_start
        midnight = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=UTC)

        if now is not None:
            now = ensure_utc(now)
            if now.date() == day and session.window_start < now:
                session.window_start = now.replace(second=0, microsecond=0)
                if session.window_start < now:
                    session.window_start += timedelta(minutes=1)
                session.window_end = session.window_start + duration

        moved = True
        while moved:
            moved = False
            for other in occupied:
                if session.overlaps(other):
                    session.window_start = other.window_end
                    session.window_end = session.window_start + duration
                    moved = True

        if session.window_end > midnight:
            logger.warning(
                f"Dropping {session.session_id}: no free window before midnight on {day.isoformat()}"
            )
            return None
        return session
