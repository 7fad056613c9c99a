"""
Retention Model - Forgetting Curve and Memory Strength.

Estimates how much of an item a learner still remembers and predicts
retention at arbitrary offsets after the last review.

Forgetting curve (Ebbinghaus):
    R(t) = base * e^(-t/S) - interference + consolidation

Where:
    t = days since last review
    S = memory stability in days, growing with repetitions, ease factor,
        mastery stage and recall accuracy
    interference = flat penalty for confusion-prone content
    consolidation = bonus proportional to retention_score / 100

base is chosen so that R(0) equals the item's stored retention_score,
making the stored score the starting point of the curve.

All functions are pure: no storage, no clock unless one is passed in.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from loguru import logger

from revision_scheduler.core.mastery import calculate_hours_since
from revision_scheduler.core.models import (
    MIN_EASE_FACTOR,
    DifficultyTier,
    PerformanceSnapshot,
    RevisionItem,
)

# Hours: 1h, 6h, 1d, 3d, 1w, 2w, 1mo
FORGETTING_HORIZONS_HOURS: tuple[int, ...] = (1, 6, 24, 72, 168, 336, 720)


@dataclass
class RetentionConfig:
    """Tunable constants of the memory model."""

    base_stability_days: float = 5.0
    repetition_bonus_days: float = 1.5
    accuracy_bonus_days: float = 3.0  # at 100% recall accuracy
    ease_bonus_days: float = 2.0  # per ease point above the minimum
    tier_stability: dict[DifficultyTier, float] = field(
        default_factory=lambda: {
            DifficultyTier.EASY: 1.2,
            DifficultyTier.MEDIUM: 1.0,
            DifficultyTier.HARD: 0.8,
        }
    )
    interference_penalty: float = 8.0
    consolidation_weight: float = 10.0
    strength_window: int = 10
    default_strength: float = 50.0
    preparation_horizon_days: int = 90
    readiness_floor: float = 0.7


@dataclass(frozen=True)
class ForgettingPoint:
    """Predicted retention at a fixed offset after the last review."""

    hours_elapsed: int
    predicted_retention: float
    recommended_action: str  # Revise, Review, Test, Skip

    def to_dict(self) -> dict:
        return {
            "hours_elapsed": self.hours_elapsed,
            "predicted_retention": self.predicted_retention,
            "recommended_action": self.recommended_action,
        }


class RetentionModel:
    """
    Forgetting-curve predictor.

    Used by the interval scheduler (memory stability for exam-aware
    intervals) and by the service for forgetting curves and readiness.
    """

    def __init__(self, config: RetentionConfig | None = None):
        self.config = config or RetentionConfig()

    # -------------------------------------------------------------------------
    # Per-item model
    # -------------------------------------------------------------------------

    def stability_days(self, item: RevisionItem) -> float:
        """
        Memory stability S in days.

        Grows with repetitions, ease factor, mastery stage and recall
        accuracy; scaled down for hard items.
        """
        cfg = self.config
        strength = (
            cfg.base_stability_days
            + item.repetition_count * cfg.repetition_bonus_days
            + item.mastery_level.stability_bonus_days
            + (item.recall_accuracy / 100.0) * cfg.accuracy_bonus_days
            + (item.ease_factor - MIN_EASE_FACTOR) * cfg.ease_bonus_days
        )
        strength *= cfg.tier_stability.get(item.difficulty_tier, 1.0)
        return max(0.5, strength)

    def interference(self, item: RevisionItem) -> float:
        """Flat retention penalty for confusion-prone content."""
        return self.config.interference_penalty if item.content_type.is_confusion_prone else 0.0

    def consolidation(self, item: RevisionItem) -> float:
        """Retention floor earned by consolidated memories."""
        return (item.retention_score / 100.0) * self.config.consolidation_weight

    def predict_retention(self, item: RevisionItem, hours_elapsed: float) -> float:
        """
        Predict retention percentage after hours_elapsed since the last review.

        Args:
            item: Item whose current state defines the curve
            hours_elapsed: Offset in hours (negative offsets count as 0)

        Returns:
            Retention percentage in [0, 100], non-increasing in hours_elapsed
        """
        t_days = max(0.0, hours_elapsed) / 24.0
        stability = self.stability_days(item)
        penalty = self.interference(item)
        bonus = self.consolidation(item)

        # Decaying share of the stored score; R(0) == retention_score
        base = item.retention_score + penalty - bonus
        retention = base * math.exp(-t_days / stability) - penalty + bonus

        return max(0.0, min(100.0, retention))

    def current_retention(self, item: RevisionItem, now: datetime | None = None) -> float:
        """Predicted retention right now, from hours since last review."""
        return self.predict_retention(item, calculate_hours_since(item.last_reviewed_at, now))

    def forgetting_curve(
        self,
        item: RevisionItem,
        horizons: Sequence[int] = FORGETTING_HORIZONS_HOURS,
    ) -> list[ForgettingPoint]:
        """Predicted retention at each horizon (hours after the last review)."""
        points = []
        for hours in horizons:
            retention = round(self.predict_retention(item, hours), 1)
            points.append(
                ForgettingPoint(
                    hours_elapsed=hours,
                    predicted_retention=retention,
                    recommended_action=self.recommended_action(retention),
                )
            )

        logger.debug(
            f"Forgetting curve for {item.item_id}: "
            + ", ".join(f"{p.hours_elapsed}h={p.predicted_retention}" for p in points)
        )
        return points

    def critical_interval_days(self, item: RevisionItem, target_retention: float) -> float:
        """
        Days until the decay term e^(-t/S) falls to target_retention.

        Formula: t = -S * ln(target)

        Raises:
            ValueError: If target_retention is not strictly between 0 and 1
        """
        if not 0.0 < target_retention < 1.0:
            raise ValueError(f"target_retention must be in (0, 1), got {target_retention}")
        return -self.stability_days(item) * math.log(target_retention)

    @staticmethod
    def recommended_action(predicted_retention: float) -> str:
        """Map a predicted retention to the action a learner should take."""
        if predicted_retention < 60:
            return "Revise"
        if predicted_retention < 80:
            return "Review"
        if predicted_retention < 95:
            return "Test"
        return "Skip"

    # -------------------------------------------------------------------------
    # Learner-level aggregates
    # -------------------------------------------------------------------------

    def memory_strength(self, history: Sequence[PerformanceSnapshot]) -> float:
        """
        Learner memory strength (0-100) from recent performance.

        Mean of recall accuracy and post-review retention over the most
        recent snapshots. A learner with no history gets the default (50).
        """
        if not history:
            return self.config.default_strength

        recent = list(history)[-self.config.strength_window :]
        avg_accuracy = statistics.fmean(s.accuracy for s in recent)
        avg_retention = statistics.fmean(s.retention_score for s in recent)

        strength = (avg_accuracy + avg_retention) / 2
        return round(max(0.0, min(100.0, strength)), 1)

    def exam_readiness(
        self,
        history: Sequence[PerformanceSnapshot],
        exam_date: date,
        today: date,
    ) -> float:
        """
        Exam readiness (0-100).

        Memory strength weighted by the time-availability factor
        min(1, days_until_exam / 90). An exam today or in the past has
        factor 0, which still yields a defined value.
        """
        days_until_exam = max(0, (exam_date - today).days)
        availability = min(1.0, days_until_exam / self.config.preparation_horizon_days)

        strength = self.memory_strength(history)
        floor = self.config.readiness_floor
        readiness = strength * (floor + availability * (1.0 - floor))

        logger.debug(
            f"Exam readiness: strength={strength}, days_until_exam={days_until_exam}, "
            f"availability={availability:.2f}, readiness={readiness:.1f}"
        )
        return round(max(0.0, min(100.0, readiness)), 1)
