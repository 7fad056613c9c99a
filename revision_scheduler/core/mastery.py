"""
Core Mastery Module.

Mastery level lifecycle for revision items and the shared time helpers
used by the retention model and the schedulers.

Lifecycle:
    LEARNING -> REVIEWING -> MASTERED -> OVERLEARNED

Items regress on a failed or hard recall:
    MASTERED / OVERLEARNED -> REVIEWING, anything else -> LEARNING
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum


class MasteryLevel(str, Enum):
    """
    Coarse lifecycle stage of a revision item.

    Thresholds (applied after a successful recall):
    - OVERLEARNED: 5+ repetitions, retention >= 90, never struggled
    - MASTERED: 3+ repetitions, retention >= 80, at most one struggle
    - REVIEWING: 2+ repetitions, retention >= 70
    """

    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"
    OVERLEARNED = "overlearned"

    @classmethod
    def from_progress(
        cls,
        repetition_count: int,
        retention_score: float,
        struggling_count: int,
    ) -> MasteryLevel:
        """
        Derive the mastery level reached after a successful recall.

        Args:
            repetition_count: Repetitions including the current review
            retention_score: Updated retention score (0-100)
            struggling_count: Struggle count after the current review

        Returns:
            Highest level whose thresholds are met
        """
        if repetition_count >= 5 and retention_score >= 90 and struggling_count == 0:
            return cls.OVERLEARNED
        if repetition_count >= 3 and retention_score >= 80 and struggling_count <= 1:
            return cls.MASTERED
        if repetition_count >= 2 and retention_score >= 70:
            return cls.REVIEWING
        return cls.LEARNING

    def demoted(self) -> MasteryLevel:
        """Level after a hard or failed recall."""
        if self in (MasteryLevel.MASTERED, MasteryLevel.OVERLEARNED):
            return MasteryLevel.REVIEWING
        return MasteryLevel.LEARNING

    @property
    def rank(self) -> int:
        return _MASTERY_RANK[self]

    @property
    def stability_bonus_days(self) -> float:
        """Extra memory stability (days) granted by this stage."""
        return {
            MasteryLevel.LEARNING: 0.0,
            MasteryLevel.REVIEWING: 2.0,
            MasteryLevel.MASTERED: 5.0,
            MasteryLevel.OVERLEARNED: 8.0,
        }[self]

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def emoji(self) -> str:
        """Status glyph for CLI display."""
        return {
            MasteryLevel.LEARNING: "◔",
            MasteryLevel.REVIEWING: "◑",
            MasteryLevel.MASTERED: "◕",
            MasteryLevel.OVERLEARNED: "●",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.LEARNING: "red",
            MasteryLevel.REVIEWING: "yellow",
            MasteryLevel.MASTERED: "cyan",
            MasteryLevel.OVERLEARNED: "green",
        }[self]


_MASTERY_RANK = {
    MasteryLevel.LEARNING: 0,
    MasteryLevel.REVIEWING: 1,
    MasteryLevel.MASTERED: 2,
    MasteryLevel.OVERLEARNED: 3,
}


# ============================================================================
# Time helpers
# ============================================================================


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def calculate_hours_since(last_review: datetime | None, now: datetime | None = None) -> float:
    """
    Calculate hours elapsed since a review.

    Args:
        last_review: Timestamp of last review (can be naive or aware)
        now: Current time (defaults to UTC now)

    Returns:
        Hours elapsed, never negative. 0.0 when the item was never reviewed.
    """
    if last_review is None:
        return 0.0

    now = ensure_utc(now or utc_now())
    delta = now - ensure_utc(last_review)
    return max(0.0, delta.total_seconds() / 3600.0)
