"""
Exam-Aware Interval Scheduler.

Implements:
- Difficulty-tiered base intervals (interval ladders per tier)
- SM-2 style ease factor update and interval scaling
- Exam-profile multipliers (importance, content type, subject)
- Exam-date-aware interval targeting a terminal retention at exam time
- Blending of both intervals into the final interval
- Retention / recall accuracy / mastery updates

Rating scale (self-assessed recall quality):
    AGAIN - failed recall, interval resets to the tier's first ladder value
    HARD  - recalled with significant difficulty
    GOOD  - recalled with some hesitation
    EASY  - perfect recall

Every output is clamped unconditionally; a review produces exactly one
state transition, returned as a new RevisionItem.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from loguru import logger

from revision_scheduler.core.errors import ConfigurationError
from revision_scheduler.core.mastery import MasteryLevel, ensure_utc, utc_now
from revision_scheduler.core.models import (
    DEFAULT_EASE_FACTOR,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    ContentType,
    DifficultyTier,
    ImportanceTier,
    ReviewEvent,
    RevisionItem,
    SelfRating,
)
from revision_scheduler.study.retention_model import RetentionModel

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SchedulerConfig:
    """Configuration for the interval scheduler."""

    easy_intervals: tuple[int, ...] = (1, 3, 7, 14, 30, 90)
    medium_intervals: tuple[int, ...] = (1, 2, 5, 10, 21, 60)
    hard_intervals: tuple[int, ...] = (1, 1, 3, 7, 14, 30)

    initial_ease: float = DEFAULT_EASE_FACTOR
    minimum_ease: float = MIN_EASE_FACTOR
    maximum_ease: float = MAX_EASE_FACTOR

    # Exam targeting
    exam_date: date | None = None
    target_exam_retention: float = 0.85
    review_budget: dict[ImportanceTier, int] = field(
        default_factory=lambda: {
            ImportanceTier.CRITICAL: 6,
            ImportanceTier.HIGH: 4,
            ImportanceTier.MEDIUM: 3,
            ImportanceTier.LOW: 2,
        }
    )
    maintenance_min_days: int = 7

    # Blend of SM-2 and exam-aware intervals
    sm2_weight: float = 0.6
    exam_weight: float = 0.4
    min_interval_days: int = 1
    max_interval_days: int = 90

    # Exam profile
    importance_multipliers: dict[ImportanceTier, float] = field(
        default_factory=lambda: {
            ImportanceTier.CRITICAL: 0.7,
            ImportanceTier.HIGH: 0.8,
            ImportanceTier.MEDIUM: 1.0,
            ImportanceTier.LOW: 1.2,
        }
    )
    content_multipliers: dict[ContentType, float] = field(
        default_factory=lambda: {ContentType.CURRENT_AFFAIRS: 0.5}
    )
    subject_multipliers: dict[str, float] = field(default_factory=dict)

    def ladder(self, tier: DifficultyTier) -> tuple[int, ...]:
        return {
            DifficultyTier.EASY: self.easy_intervals,
            DifficultyTier.MEDIUM: self.medium_intervals,
            DifficultyTier.HARD: self.hard_intervals,
        }[tier]


# Rating lookup tables
RATING_INTERVAL_FACTOR = {
    SelfRating.EASY: 1.4,
    SelfRating.GOOD: 1.0,
    SelfRating.HARD: 0.6,
}

RATING_EASE_DELTA = {
    SelfRating.EASY: 0.15,
    SelfRating.GOOD: 0.05,
    SelfRating.HARD: -0.20,
    SelfRating.AGAIN: -0.30,
}

RATING_RETENTION_SCORE = {
    SelfRating.EASY: 95.0,
    SelfRating.GOOD: 80.0,
    SelfRating.HARD: 60.0,
    SelfRating.AGAIN: 30.0,
}

RATING_RECALL_ACCURACY = {
    SelfRating.EASY: 100.0,
    SelfRating.GOOD: 100.0,
    SelfRating.HARD: 70.0,
    SelfRating.AGAIN: 40.0,
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# Review outcome
# =============================================================================


@dataclass
class ReviewOutcome:
    """
    Result of scheduling one review.

    Carries the new scheduling / performance state plus the intermediate
    intervals so the calculation can be logged and inspected.
    """

    item_id: str
    difficulty_tier: DifficultyTier
    interval_days: int
    ease_factor: float
    repetition_count: int
    next_due_at: datetime
    reviewed_at: datetime
    retention_score: float
    recall_accuracy: float
    struggling_count: int
    mastery_level: MasteryLevel
    last_recall_latency_seconds: float

    # Intermediate values
    base_interval: float = 0.0
    sm2_interval: float = 0.0
    exam_interval: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "difficulty_tier": self.difficulty_tier.value,
            "interval_days": self.interval_days,
            "ease_factor": self.ease_factor,
            "repetition_count": self.repetition_count,
            "next_due_at": self.next_due_at.isoformat(),
            "reviewed_at": self.reviewed_at.isoformat(),
            "retention_score": self.retention_score,
            "recall_accuracy": self.recall_accuracy,
            "struggling_count": self.struggling_count,
            "mastery_level": self.mastery_level.value,
            "base_interval": self.base_interval,
            "sm2_interval": self.sm2_interval,
            "exam_interval": self.exam_interval,
        }


# =============================================================================
# Scheduler
# =============================================================================


class IntervalScheduler:
    """
    Computes the next review state of a revision item.

    Deterministic given (item, event, config, clock): the clock is the
    event's reviewed_at, else the `now` argument, else UTC now.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        retention_model: RetentionModel | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
            retention_model: Memory model used for exam-aware intervals
        """
        self.config = config or SchedulerConfig()
        self.retention_model = retention_model or RetentionModel()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def compute_next_state(
        self,
        item: RevisionItem,
        event: ReviewEvent | dict[str, Any],
        tier: DifficultyTier | None = None,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """
        Calculate the post-review state of an item.

        Args:
            item: Current item state
            event: Review event (validated before anything is computed)
            tier: Difficulty tier decided for this review (defaults to the item's)
            now: Clock used when the event carries no reviewed_at

        Returns:
            ReviewOutcome with the new state and intermediate intervals

        Raises:
            ReviewValidationError: If the event is malformed
        """
        event = ReviewEvent.parse(event)
        tier = tier or item.difficulty_tier
        reviewed_at = ensure_utc(event.reviewed_at or now or utc_now())
        rating = event.self_rating

        ease = self.update_ease_factor(item.ease_factor, event)
        base = self.base_interval(item, rating, tier)

        exam_interval: float | None = None
        if rating is SelfRating.AGAIN:
            sm2 = float(self.config.ladder(tier)[0])
            interval = int(_clamp(sm2, self.config.min_interval_days, self.config.max_interval_days))
        else:
            sm2 = self.sm2_interval(item, event, base, ease)
            exam_interval = self.exam_aware_interval(item, sm2, reviewed_at.date())
            interval = self.blend(sm2, exam_interval)

        retention = self.update_retention_score(item.retention_score, event)
        accuracy = self.update_recall_accuracy(item.recall_accuracy, event)
        repetitions = 0 if rating is SelfRating.AGAIN else item.repetition_count + 1
        struggles = item.struggling_count + (1 if rating.is_struggle else 0)
        mastery = self.update_mastery(item.mastery_level, rating, repetitions, retention, struggles)

        logger.debug(
            f"Interval for {item.item_id}: tier={tier.value}, rating={rating.value}, "
            f"base={base:.2f}, sm2={sm2:.2f}, exam={exam_interval}, final={interval}d, "
            f"ease {item.ease_factor:.2f}->{ease:.2f}"
        )

        return ReviewOutcome(
            item_id=item.item_id,
            difficulty_tier=tier,
            interval_days=interval,
            ease_factor=ease,
            repetition_count=repetitions,
            next_due_at=reviewed_at + timedelta(days=interval),
            reviewed_at=reviewed_at,
            retention_score=retention,
            recall_accuracy=accuracy,
            struggling_count=struggles,
            mastery_level=mastery,
            last_recall_latency_seconds=event.time_spent_seconds,
            base_interval=base,
            sm2_interval=sm2,
            exam_interval=exam_interval,
        )

    @staticmethod
    def apply(item: RevisionItem, outcome: ReviewOutcome) -> RevisionItem:
        """Produce the new item value for a computed outcome (copy-on-write)."""
        return item.model_copy(
            update={
                "difficulty_tier": outcome.difficulty_tier,
                "interval_days": outcome.interval_days,
                "ease_factor": outcome.ease_factor,
                "repetition_count": outcome.repetition_count,
                "next_due_at": outcome.next_due_at,
                "last_reviewed_at": outcome.reviewed_at,
                "retention_score": outcome.retention_score,
                "recall_accuracy": outcome.recall_accuracy,
                "last_recall_latency_seconds": outcome.last_recall_latency_seconds,
                "struggling_count": outcome.struggling_count,
                "mastery_level": outcome.mastery_level,
                "updated_at": outcome.reviewed_at,
            }
        )

    def review(
        self,
        item: RevisionItem,
        event: ReviewEvent | dict[str, Any],
        tier: DifficultyTier | None = None,
        now: datetime | None = None,
    ) -> RevisionItem:
        """Compute and apply in one step."""
        return self.apply(item, self.compute_next_state(item, event, tier=tier, now=now))

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def base_interval(self, item: RevisionItem, rating: SelfRating, tier: DifficultyTier) -> float:
        """Ladder value at the item's repetition index, scaled by rating."""
        ladder = self.config.ladder(tier)
        if rating is SelfRating.AGAIN:
            return float(ladder[0])
        index = min(item.repetition_count, len(ladder) - 1)
        return ladder[index] * RATING_INTERVAL_FACTOR[rating]

    def update_ease_factor(self, ease: float, event: ReviewEvent) -> float:
        """
        Update ease factor from rating, confidence and response time.

        EF' = EF + rating_delta + (confidence - 3) * 0.05 + speed_delta
        where speed_delta is -0.1 above 30 seconds, else +0.1.
        """
        new_ease = ease + RATING_EASE_DELTA[event.self_rating]
        new_ease += (event.confidence - 3) * 0.05
        new_ease += -0.1 if event.time_spent_seconds > 30 else 0.1
        return round(_clamp(new_ease, self.config.minimum_ease, self.config.maximum_ease), 4)

    def sm2_interval(
        self,
        item: RevisionItem,
        event: ReviewEvent,
        base: float,
        ease: float,
    ) -> float:
        """SM-2 scaling of the base interval followed by exam-profile multipliers."""
        confidence_multiplier = 1 + (event.confidence - 3) * 0.1
        if event.time_spent_seconds < 15:
            speed_multiplier = 1.2
        elif event.time_spent_seconds > 45:
            speed_multiplier = 0.8
        else:
            speed_multiplier = 1.0

        interval = base * ease * confidence_multiplier * speed_multiplier
        return interval * self.profile_multiplier(item)

    def profile_multiplier(self, item: RevisionItem) -> float:
        """Exam-profile multiplier: importance x content type x subject."""
        cfg = self.config
        return (
            cfg.importance_multipliers.get(item.importance_tier, 1.0)
            * cfg.content_multipliers.get(item.content_type, 1.0)
            * cfg.subject_multipliers.get(item.subject, 1.0)
        )

    def exam_aware_interval(self, item: RevisionItem, sm2_interval: float, today: date) -> float:
        """
        Exam-aware interval, degrading to 1 day when the exam is today or past.

        Without a configured exam date the SM-2 interval is used unchanged.
        """
        if self.config.exam_date is None:
            return sm2_interval
        try:
            return self.exam_target_interval(item, today)
        except ConfigurationError as e:
            logger.warning(f"Exam-aware interval degraded for {item.item_id}: {e}")
            return 1.0

    def exam_target_interval(self, item: RevisionItem, today: date) -> float:
        """
        Interval keeping retention at the exam above the target.

        critical = -S * ln(target), bounded by the spacing of the reviews
        remaining in the importance budget.

        Raises:
            ConfigurationError: If no exam date is set or it is not in the future
        """
        exam_date = self.config.exam_date
        if exam_date is None:
            raise ConfigurationError("No exam date configured")

        days_until_exam = (exam_date - today).days
        if days_until_exam <= 0:
            raise ConfigurationError(f"Exam date {exam_date.isoformat()} is not in the future")

        critical = self.retention_model.critical_interval_days(
            item, self.config.target_exam_retention
        )
        spacing = self.budget_spacing(item, days_until_exam)
        return max(1.0, min(critical, spacing))

    def budget_spacing(self, item: RevisionItem, days_until_exam: int) -> float:
        """Days between the reviews still owed before the exam."""
        budget = self.config.review_budget.get(item.importance_tier, 3)
        remaining = max(0, budget - item.repetition_count)
        if remaining == 0:
            return max(float(self.config.maintenance_min_days), days_until_exam / 2)
        return max(1.0, days_until_exam / remaining)

    def blend(self, sm2_interval: float, exam_interval: float) -> int:
        """round(w_sm2 * sm2 + w_exam * exam), clamped to [min, max] days."""
        cfg = self.config
        blended = cfg.sm2_weight * sm2_interval + cfg.exam_weight * exam_interval
        return int(_clamp(_round_half_up(blended), cfg.min_interval_days, cfg.max_interval_days))

    @staticmethod
    def update_retention_score(previous: float, event: ReviewEvent) -> float:
        """30/70 blend of previous and rating-derived retention score."""
        score = RATING_RETENTION_SCORE[event.self_rating]
        score += (event.confidence / 5) * 20
        if event.time_spent_seconds < 20:
            score += 10
        elif event.time_spent_seconds > 60:
            score -= 10

        blended = previous * 0.3 + _clamp(score, 0, 100) * 0.7
        return round(_clamp(blended, 0, 100), 2)

    @staticmethod
    def update_recall_accuracy(previous: float, event: ReviewEvent) -> float:
        """70/30 blend of previous and rating-derived accuracy."""
        accuracy = RATING_RECALL_ACCURACY[event.self_rating] + (event.confidence - 3) * 10
        blended = previous * 0.7 + _clamp(accuracy, 0, 100) * 0.3
        return round(_clamp(blended, 0, 100), 2)

    @staticmethod
    def update_mastery(
        current: MasteryLevel,
        rating: SelfRating,
        repetitions: int,
        retention: float,
        struggles: int,
    ) -> MasteryLevel:
        """Demote on hard / failed recall; otherwise derive from thresholds."""
        if rating.is_struggle:
            return current.demoted()
        return MasteryLevel.from_progress(repetitions, retention, struggles)
