"""
Adaptive Difficulty Engine.

Components:
- DifficultyAdapter: Rule-table tier decisions, flow state, learner profile
- AdaptationRule: One rule with a tagged condition variant
"""
from revision_scheduler.adaptive.difficulty_adapter import (
    DEFAULT_RULES,
    AdaptationRule,
    DifficultyAdapter,
    DifficultyProfile,
    FlowMeasurement,
    FlowState,
    PlateauCondition,
    StreakCondition,
    TierDecision,
    TrendCondition,
)

__all__ = [
    # Main engine
    "DifficultyAdapter",
    # Rule table
    "AdaptationRule",
    "DEFAULT_RULES",
    "StreakCondition",
    "PlateauCondition",
    "TrendCondition",
    # Results
    "TierDecision",
    "FlowMeasurement",
    "FlowState",
    "DifficultyProfile",
]
