"""
Study Scheduling Module.

Provides:
- Forgetting-curve retention prediction and memory strength
- Exam-aware interval / ease factor scheduling
"""

from revision_scheduler.study.interval_scheduler import (
    IntervalScheduler,
    ReviewOutcome,
    SchedulerConfig,
)
from revision_scheduler.study.retention_model import (
    FORGETTING_HORIZONS_HOURS,
    ForgettingPoint,
    RetentionConfig,
    RetentionModel,
)

__all__ = [
    "IntervalScheduler",
    "ReviewOutcome",
    "SchedulerConfig",
    "RetentionModel",
    "RetentionConfig",
    "ForgettingPoint",
    "FORGETTING_HORIZONS_HOURS",
]
