"""
Difficulty Adapter.

Decides the difficulty tier for the next review of an item from the
learner's recent performance snapshots.

Rules are data: each AdaptationRule carries a tagged condition variant
(StreakCondition, PlateauCondition, TrendCondition), the tiers it applies
to, a target tier and a priority. Rules are evaluated by descending
priority; the first match wins and the tier moves at most one step toward
the rule's target. A rule that changed the tier does not fire again
for that item until its cooldown has passed.

Also provides:
- Flow-state measurement (engagement / frustration / boredom)
- Learner difficulty profile (comfort zone, learning velocity, subject proficiency)
- Weighted synthesis of rule, flow and comfort-zone recommendations
"""

from __future__ import annotations

import statistics
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from revision_scheduler.core.mastery import utc_now
from revision_scheduler.core.models import (
    DifficultyTier,
    PerformanceSnapshot,
    ReviewEvent,
    RevisionItem,
    SelfRating,
)

DEFAULT_WINDOW = 15

SNAPSHOT_ACCURACY = {
    SelfRating.EASY: 95.0,
    SelfRating.GOOD: 85.0,
    SelfRating.HARD: 65.0,
    SelfRating.AGAIN: 35.0,
}

STREAK_ACCURACY = 70.0


# =============================================================================
# Rule conditions (tagged variants)
# =============================================================================


SnapshotPredicate = Callable[[PerformanceSnapshot], bool]


@dataclass(frozen=True)
class StreakCondition:
    """At least min_count trailing consecutive snapshots satisfy predicate."""

    predicate: SnapshotPredicate
    min_count: int = 3
    kind: str = "streak"

    def matches(self, window: Sequence[PerformanceSnapshot]) -> bool:
        return trailing_run(window, self.predicate) >= self.min_count


@dataclass(frozen=True)
class PlateauCondition:
    """Accuracy variance below threshold over the last `span` snapshots."""

    span: int = 8
    max_variance: float = 5.0
    kind: str = "plateau"

    def matches(self, window: Sequence[PerformanceSnapshot]) -> bool:
        if len(window) < self.span:
            return False
        return accuracy_variance(window[-self.span :]) < self.max_variance


@dataclass(frozen=True)
class TrendCondition:
    """Accuracy regression slope above threshold over the last `span` snapshots."""

    span: int = 6
    min_slope: float = 0.1
    kind: str = "trend"

    def matches(self, window: Sequence[PerformanceSnapshot]) -> bool:
        if len(window) < self.span:
            return False
        return accuracy_slope(window[-self.span :]) > self.min_slope


RuleCondition = StreakCondition | PlateauCondition | TrendCondition


@dataclass(frozen=True)
class AdaptationRule:
    """One row of the adaptation table."""

    rule_id: str
    condition: RuleCondition
    applies_to: frozenset[DifficultyTier]
    target: DifficultyTier
    priority: int
    reason: str
    cooldown_hours: float = 0.0

    def matches(self, window: Sequence[PerformanceSnapshot], current: DifficultyTier) -> bool:
        return current in self.applies_to and self.condition.matches(window)

    def cooling_down(self, window: Sequence[PerformanceSnapshot], now: datetime) -> bool:
        """True if this rule changed the tier less than cooldown_hours before now."""
        if self.cooldown_hours <= 0:
            return False
        since = now - timedelta(hours=self.cooldown_hours)
        return any(s.adaptation_rule == self.rule_id and s.timestamp > since for s in window)


_ALL_TIERS = frozenset(DifficultyTier)


def _tiers_except(tier: DifficultyTier) -> frozenset[DifficultyTier]:
    return _ALL_TIERS - {tier}


DEFAULT_RULES: tuple[AdaptationRule, ...] = (
    AdaptationRule(
        rule_id="low_accuracy_struggle",
        condition=StreakCondition(lambda s: s.accuracy <= 50),
        applies_to=_tiers_except(DifficultyTier.EASY),
        target=DifficultyTier.EASY,
        priority=9,
        reason="Persistent low accuracy requires foundational reinforcement",
        cooldown_hours=12,
    ),
    AdaptationRule(
        rule_id="high_accuracy_streak",
        condition=StreakCondition(lambda s: s.accuracy >= 85),
        applies_to=_tiers_except(DifficultyTier.HARD),
        target=DifficultyTier.HARD,
        priority=8,
        reason="Consistently high accuracy indicates readiness for increased challenge",
        cooldown_hours=24,
    ),
    AdaptationRule(
        rule_id="slow_uncertain_responses",
        condition=StreakCondition(lambda s: s.speed < 0.7 and s.confidence <= 2),
        applies_to=frozenset({DifficultyTier.HARD}),
        target=DifficultyTier.MEDIUM,
        priority=8,
        reason="Slow, uncertain responses suggest cognitive overload",
        cooldown_hours=6,
    ),
    AdaptationRule(
        rule_id="fast_confident_responses",
        condition=StreakCondition(lambda s: s.speed > 1.5 and s.confidence >= 4),
        applies_to=frozenset({DifficultyTier.EASY}),
        target=DifficultyTier.MEDIUM,
        priority=7,
        reason="Fast, confident responses indicate mastery at current level",
        cooldown_hours=12,
    ),
    AdaptationRule(
        rule_id="plateauing_performance",
        condition=PlateauCondition(span=8, max_variance=5.0),
        applies_to=_tiers_except(DifficultyTier.HARD),
        target=DifficultyTier.HARD,
        priority=6,
        reason="Performance plateau indicates need for increased challenge",
        cooldown_hours=48,
    ),
    AdaptationRule(
        rule_id="improving_trend",
        condition=TrendCondition(span=6, min_slope=0.1),
        applies_to=frozenset({DifficultyTier.EASY}),
        target=DifficultyTier.MEDIUM,
        priority=5,
        reason="Consistent improvement warrants difficulty progression",
        cooldown_hours=24,
    ),
)


# =============================================================================
# Statistics helpers
# =============================================================================


def trailing_run(window: Sequence[PerformanceSnapshot], predicate: SnapshotPredicate) -> int:
    """Length of the run of snapshots satisfying predicate at the end of window."""
    run = 0
    for snapshot in reversed(window):
        if not predicate(snapshot):
            break
        run += 1
    return run


def accuracy_variance(window: Sequence[PerformanceSnapshot]) -> float:
    """Population variance of accuracy (0 for fewer than two snapshots)."""
    if len(window) <= 1:
        return 0.0
    return statistics.pvariance([s.accuracy for s in window])


def accuracy_slope(window: Sequence[PerformanceSnapshot]) -> float:
    """Least-squares slope of accuracy against snapshot index."""
    n = len(window)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_x2 = n * (n - 1) * (2 * n - 1) / 6
    sum_y = sum(s.accuracy for s in window)
    sum_xy = sum(i * s.accuracy for i, s in enumerate(window))
    return (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)


# =============================================================================
# Results
# =============================================================================


@dataclass
class TierDecision:
    """Outcome of evaluating the adaptation rules."""

    current_tier: DifficultyTier
    next_tier: DifficultyTier
    reason: str
    rule_id: str | None = None
    triggered_rules: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.next_tier is not self.current_tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_tier": self.current_tier.value,
            "next_tier": self.next_tier.value,
            "reason": self.reason,
            "rule_id": self.rule_id,
            "triggered_rules": list(self.triggered_rules),
        }


@dataclass
class FlowMeasurement:
    """Flow components of one review (each 0-100, flow in [-100, 100])."""

    engagement: float
    frustration: float
    boredom: float
    flow_score: float


@dataclass
class FlowState:
    """Recency-weighted flow over a window of snapshots."""

    current_flow: float
    recommended_tier: DifficultyTier
    measurements: list[FlowMeasurement] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_flow": self.current_flow,
            "recommended_tier": self.recommended_tier.value,
            "measurements": len(self.measurements),
        }


@dataclass
class DifficultyProfile:
    """Long-run difficulty profile of a learner."""

    comfort_zone: DifficultyTier
    learning_velocity: float
    subject_proficiency: dict[str, DifficultyTier] = field(default_factory=dict)
    snapshot_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "comfort_zone": self.comfort_zone.value,
            "learning_velocity": self.learning_velocity,
            "subject_proficiency": {k: v.value for k, v in self.subject_proficiency.items()},
            "snapshot_count": self.snapshot_count,
        }


# =============================================================================
# Adapter
# =============================================================================


class DifficultyAdapter:
    """
    Performance-driven difficulty tier adaptation.

    Stateless: callers pass the snapshot window; nothing is remembered
    between calls.
    """

    def __init__(
        self,
        rules: Sequence[AdaptationRule] = DEFAULT_RULES,
        window_size: int = DEFAULT_WINDOW,
    ):
        # Stable sort keeps table order for equal priorities
        self.rules = sorted(rules, key=lambda r: -r.priority)
        self.window_size = window_size

    # -------------------------------------------------------------------------
    # Rule evaluation
    # -------------------------------------------------------------------------

    def decide(
        self,
        window: Sequence[PerformanceSnapshot],
        current_tier: DifficultyTier,
        now: datetime | None = None,
    ) -> TierDecision:
        """
        Evaluate the rule table over the most recent snapshots.

        A rule that changed the tier within its cooldown period (as recorded
        on the window's snapshots) is skipped.

        Args:
            window: Snapshots in chronological order (only the last
                window_size are considered)
            current_tier: Tier the item is currently scheduled at
            now: Evaluation time for cooldowns (defaults to the newest
                snapshot's timestamp)

        Returns:
            TierDecision; unchanged tier when no rule matches
        """
        recent = list(window)[-self.window_size :]
        if now is None:
            now = recent[-1].timestamp if recent else utc_now()

        matched = [rule for rule in self.rules if rule.matches(recent, current_tier)]
        triggered = [rule for rule in matched if not rule.cooling_down(recent, now)]

        if not triggered:
            reason = "No adaptation rule matched"
            if matched:
                reason = f"Adaptation rule {matched[0].rule_id} is cooling down"
                logger.debug(f"{reason}; tier stays {current_tier.value}")
            return TierDecision(
                current_tier=current_tier,
                next_tier=current_tier,
                reason=reason,
            )

        winner = triggered[0]
        next_tier = current_tier.step_toward(winner.target)
        logger.debug(
            f"Adaptation rule {winner.rule_id} fired: {current_tier.value} -> {next_tier.value} "
            f"(triggered: {', '.join(r.rule_id for r in triggered)})"
        )
        return TierDecision(
            current_tier=current_tier,
            next_tier=next_tier,
            reason=winner.reason,
            rule_id=winner.rule_id,
            triggered_rules=[r.rule_id for r in triggered],
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    @staticmethod
    def snapshot_from_review(
        item: RevisionItem,
        event: ReviewEvent,
        history: Sequence[PerformanceSnapshot] = (),
        retention_score: float | None = None,
        timestamp: datetime | None = None,
    ) -> PerformanceSnapshot:
        """
        Build the performance snapshot for one review.

        Args:
            item: Item as it was when reviewed
            event: Validated review event
            history: Learner's earlier snapshots (for the item streak)
            retention_score: Post-review retention score, if known
            timestamp: Snapshot time (defaults to event time or now)
        """
        accuracy = SNAPSHOT_ACCURACY[event.self_rating] + (event.confidence - 3) * 5
        accuracy = max(0.0, min(100.0, accuracy))
        speed = 60.0 / event.time_spent_seconds if event.time_spent_seconds > 0 else 1.0

        item_history = [s for s in history if s.item_id == item.item_id]
        streak = trailing_run(item_history, lambda s: s.accuracy >= STREAK_ACCURACY)
        if accuracy >= STREAK_ACCURACY:
            streak += 1
        else:
            streak = 0

        return PerformanceSnapshot(
            timestamp=timestamp or event.reviewed_at or utc_now(),
            item_id=item.item_id,
            accuracy=accuracy,
            speed=round(speed, 4),
            confidence=event.confidence,
            streak_at_time=streak,
            context_tag=context_tag(item),
            self_rating=event.self_rating,
            hints_used=event.hints_used,
            time_spent_seconds=event.time_spent_seconds,
            retention_score=item.retention_score if retention_score is None else retention_score,
        )

    # -------------------------------------------------------------------------
    # Flow state
    # -------------------------------------------------------------------------

    @staticmethod
    def measure_flow(snapshot: PerformanceSnapshot) -> FlowMeasurement:
        """Engagement minus the mean of frustration and boredom."""
        seconds = snapshot.time_spent_seconds
        confidence = snapshot.confidence

        time_engagement = 80 if 10 < seconds < 180 else 40
        confidence_engagement = confidence * 15 if confidence >= 3 else 20
        effort_engagement = 70 if snapshot.hints_used <= 2 else 40
        engagement = round((time_engagement + confidence_engagement + effort_engagement) / 3)

        frustration = 0
        if seconds > 300:
            frustration += 30
        if confidence <= 2:
            frustration += 40
        if snapshot.hints_used > 3:
            frustration += 30
        if snapshot.self_rating is SelfRating.AGAIN:
            frustration += 50
        frustration = min(100, frustration)

        boredom = 0
        if seconds < 10 and confidence >= 4:
            boredom += 60
        if snapshot.self_rating is SelfRating.EASY and snapshot.hints_used == 0:
            boredom += 40
        boredom = min(100, boredom)

        flow = engagement - (frustration + boredom) / 2
        return FlowMeasurement(
            engagement=engagement,
            frustration=frustration,
            boredom=boredom,
            flow_score=max(-100.0, min(100.0, flow)),
        )

    def flow_state(self, window: Sequence[PerformanceSnapshot]) -> FlowState:
        """Recency-weighted flow (weight 1.1^i) and the tier it recommends."""
        recent = list(window)[-self.window_size :]
        measurements = [self.measure_flow(s) for s in recent]

        if measurements:
            weights = [1.1**i for i in range(len(measurements))]
            weighted = sum(m.flow_score * w for m, w in zip(measurements, weights))
            current_flow = round(weighted / sum(weights), 1)
        else:
            current_flow = 0.0

        return FlowState(
            current_flow=current_flow,
            recommended_tier=tier_for_flow(current_flow),
            measurements=measurements,
        )

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    @staticmethod
    def comfort_zone(history: Sequence[PerformanceSnapshot]) -> DifficultyTier:
        if not history:
            return DifficultyTier.MEDIUM
        avg_accuracy = statistics.fmean(s.accuracy for s in history)
        avg_confidence = statistics.fmean(s.confidence for s in history)
        if avg_accuracy >= 80 and avg_confidence >= 4:
            return DifficultyTier.HARD
        if avg_accuracy >= 65 and avg_confidence >= 3:
            return DifficultyTier.MEDIUM
        return DifficultyTier.EASY

    @staticmethod
    def learning_velocity(history: Sequence[PerformanceSnapshot]) -> float:
        """
        Relative improvement rate in [0.5, 2.0].

        Compares mean accuracy of the last 10 snapshots with the 10 before.
        """
        if len(history) < 5:
            return 1.0
        recent = list(history)[-10:]
        earlier = list(history)[-20:-10]
        if not earlier:
            return 1.0
        improvement = statistics.fmean(s.accuracy for s in recent) - statistics.fmean(
            s.accuracy for s in earlier
        )
        return round(max(0.5, min(2.0, 1.0 + improvement / 50)), 3)

    @staticmethod
    def subject_proficiency(history: Sequence[PerformanceSnapshot]) -> dict[str, DifficultyTier]:
        """Proficiency tier per subject (subject parsed from the context tag)."""
        by_subject: dict[str, list[PerformanceSnapshot]] = defaultdict(list)
        for snapshot in history:
            by_subject[subject_from_context(snapshot.context_tag)].append(snapshot)

        proficiency = {}
        for subject, snapshots in by_subject.items():
            avg_accuracy = statistics.fmean(s.accuracy for s in snapshots)
            avg_confidence = statistics.fmean(s.confidence for s in snapshots)
            if avg_accuracy >= 85 and avg_confidence >= 4:
                proficiency[subject] = DifficultyTier.HARD
            elif avg_accuracy >= 70 and avg_confidence >= 3:
                proficiency[subject] = DifficultyTier.MEDIUM
            else:
                proficiency[subject] = DifficultyTier.EASY
        return proficiency

    def build_profile(self, history: Sequence[PerformanceSnapshot]) -> DifficultyProfile:
        return DifficultyProfile(
            comfort_zone=self.comfort_zone(history),
            learning_velocity=self.learning_velocity(history),
            subject_proficiency=self.subject_proficiency(history),
            snapshot_count=len(history),
        )

    # -------------------------------------------------------------------------
    # Synthesis
    # -------------------------------------------------------------------------

    def synthesize(
        self,
        current_tier: DifficultyTier,
        window: Sequence[PerformanceSnapshot],
        history: Sequence[PerformanceSnapshot] | None = None,
    ) -> TierDecision:
        """
        Weighted vote: 50% rule decision, 30% flow, 20% comfort zone.

        Ties resolve toward the current tier; the result moves at most one
        tier from current_tier.
        """
        history = window if history is None else history
        rule_decision = self.decide(window, current_tier)
        flow = self.flow_state(window)
        comfort = self.comfort_zone(history)

        votes: dict[DifficultyTier, float] = defaultdict(float)
        votes[rule_decision.next_tier] += 0.5
        votes[flow.recommended_tier] += 0.3
        votes[comfort] += 0.2

        best = max(votes.values())
        leaders = [tier for tier, weight in votes.items() if abs(weight - best) < 1e-9]
        if current_tier in leaders:
            winner = current_tier
        else:
            winner = min(leaders, key=lambda t: abs(t.rank - current_tier.rank))

        next_tier = current_tier.step_toward(winner)
        logger.debug(
            f"Synthesized tier {current_tier.value} -> {next_tier.value} "
            f"(rules={rule_decision.next_tier.value}, flow={flow.recommended_tier.value}, "
            f"comfort={comfort.value})"
        )
        return TierDecision(
            current_tier=current_tier,
            next_tier=next_tier,
            reason=(
                f"Weighted vote of rules ({rule_decision.next_tier.value}), "
                f"flow ({flow.recommended_tier.value}) and comfort zone ({comfort.value})"
            ),
            rule_id=rule_decision.rule_id,
            triggered_rules=rule_decision.triggered_rules,
        )


# =============================================================================
# Module helpers
# =============================================================================


def tier_for_flow(flow_score: float) -> DifficultyTier:
    if flow_score >= 60:
        return DifficultyTier.HARD
    if flow_score >= 20:
        return DifficultyTier.MEDIUM
    return DifficultyTier.EASY


def context_tag(item: RevisionItem) -> str:
    """tier-content_type-subject, e.g. 'medium-concept-Polity'."""
    return f"{item.difficulty_tier.value}-{item.content_type.value}-{item.subject}"


def subject_from_context(tag: str) -> str:
    parts = tag.split("-", 2)
    return parts[2] if len(parts) > 2 and parts[2] else "General"
