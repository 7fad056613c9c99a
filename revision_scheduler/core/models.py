"""
Shared data model for revision scheduling.

RevisionItem and ReviewEvent are pydantic models so malformed input is
rejected at the boundary. RevisionItem is frozen: every review produces a
new value via model_copy(update=...), never an in-place mutation.

PerformanceSnapshot and ScheduleSession are plain dataclasses, like the
other engine-internal records in this package.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from revision_scheduler.core.errors import ReviewValidationError
from revision_scheduler.core.mastery import MasteryLevel, ensure_utc, utc_now

MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
DEFAULT_EASE_FACTOR = 2.5


# =============================================================================
# Enumerations
# =============================================================================


class _CaseInsensitiveEnum(str, Enum):
    """Accepts 'Good', 'GOOD' or 'good' when parsing."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class SelfRating(_CaseInsensitiveEnum):
    """Self-assessed recall quality, ordered AGAIN < HARD < GOOD < EASY."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def rank(self) -> int:
        return {"again": 1, "hard": 2, "good": 3, "easy": 4}[self.value]

    @property
    def is_struggle(self) -> bool:
        """Hard and failed recalls count as struggles."""
        return self in (SelfRating.AGAIN, SelfRating.HARD)


class DifficultyTier(_CaseInsensitiveEnum):
    """Difficulty tier selecting the interval ladder, ordered EASY < MEDIUM < HARD."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return {"easy": 1, "medium": 2, "hard": 3}[self.value]

    @classmethod
    def from_rank(cls, rank: int) -> DifficultyTier:
        rank = max(1, min(3, rank))
        return {1: cls.EASY, 2: cls.MEDIUM, 3: cls.HARD}[rank]

    def step_toward(self, target: DifficultyTier) -> DifficultyTier:
        """Move at most one tier toward target."""
        if target.rank > self.rank:
            return DifficultyTier.from_rank(self.rank + 1)
        if target.rank < self.rank:
            return DifficultyTier.from_rank(self.rank - 1)
        return self


class ImportanceTier(_CaseInsensitiveEnum):
    """Exam importance of an item."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        """4 for critical down to 1 for low; higher sorts first."""
        return {"critical": 4, "high": 3, "medium": 2, "low": 1}[self.value]


class ContentType(_CaseInsensitiveEnum):
    """Kind of source content an item was ingested from."""

    LESSON = "lesson"
    QUESTION = "question"
    CURRENT_AFFAIRS = "current_affairs"
    CONCEPT = "concept"
    FORMULA = "formula"
    DATE = "date"
    SCHEME = "scheme"

    @property
    def is_confusion_prone(self) -> bool:
        """Fast-changing or look-alike content that suffers interference."""
        return self in (ContentType.CURRENT_AFFAIRS, ContentType.SCHEME)


class SessionType(_CaseInsensitiveEnum):
    """Named, time-boxed session kinds produced by the schedule builder."""

    MORNING_INTENSIVE = "morning_intensive"
    SUBJECT_CYCLE = "subject_cycle"
    WEEKEND_COMPREHENSIVE = "weekend_comprehensive"
    EVENING_RECALL = "evening_recall"
    CATCH_UP = "catch_up"

    @property
    def minutes_per_item(self) -> int:
        """Per-item time estimate used for capacity planning."""
        return {
            "morning_intensive": 2,
            "subject_cycle": 3,
            "weekend_comprehensive": 3,
            "evening_recall": 1,
            "catch_up": 2,
        }[self.value]

    @property
    def default_minutes(self) -> int:
        return {
            "morning_intensive": 30,
            "subject_cycle": 45,
            "weekend_comprehensive": 60,
            "evening_recall": 15,
            "catch_up": 30,
        }[self.value]


# =============================================================================
# Revision item
# =============================================================================


class RevisionContent(BaseModel):
    """Static payload of an item. Opaque to the scheduler."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    key_points: list[str] = Field(default_factory=list)
    facts: list[str] = Field(default_factory=list)


class RevisionItem(BaseModel):
    """
    One revisable knowledge unit.

    Scheduling and performance state default to a never-reviewed item, so
    records with missing prior state load as repetition_count = 0.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    item_id: str
    owner_id: str
    content_id: str = ""
    content_type: ContentType = ContentType.CONCEPT
    subject: str = "General"
    topic: str = ""

    # Payload
    content: RevisionContent = Field(default_factory=RevisionContent)

    # Scheduling state
    difficulty_tier: DifficultyTier = DifficultyTier.MEDIUM
    importance_tier: ImportanceTier = ImportanceTier.MEDIUM
    interval_days: int = Field(default=0, ge=0)
    repetition_count: int = Field(default=0, ge=0)
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR, le=MAX_EASE_FACTOR)
    next_due_at: datetime | None = None
    last_reviewed_at: datetime | None = None

    # Performance state
    retention_score: float = Field(default=0.0, ge=0, le=100)
    recall_accuracy: float = Field(default=0.0, ge=0, le=100)
    last_recall_latency_seconds: float | None = Field(default=None, ge=0)
    struggling_count: int = Field(default=0, ge=0)
    mastery_level: MasteryLevel = MasteryLevel.LEARNING

    # Metadata
    tags: list[str] = Field(default_factory=list)
    source: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("next_due_at", "last_reviewed_at", "created_at", "updated_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @property
    def is_new(self) -> bool:
        """Never reviewed."""
        return self.last_reviewed_at is None

    def is_due(self, as_of: date) -> bool:
        """Due on or before the given day. Never-scheduled items are due."""
        if self.next_due_at is None:
            return True
        return self.next_due_at.date() <= as_of

    def days_overdue(self, as_of: date) -> int:
        """Whole days past the due date (0 when not overdue)."""
        if self.next_due_at is None:
            return 0
        return max(0, (as_of - self.next_due_at.date()).days)

    def days_until_due(self, as_of: date) -> int:
        if self.next_due_at is None:
            return 0
        return (self.next_due_at.date() - as_of).days


# =============================================================================
# Review event
# =============================================================================


class ReviewEvent(BaseModel):
    """One answer submission. Ephemeral: consumed once, then logged as a snapshot."""

    model_config = ConfigDict(frozen=True)

    self_rating: SelfRating
    confidence: int = Field(ge=1, le=5)
    time_spent_seconds: float = Field(ge=0)
    hints_used: int = Field(default=0, ge=0)
    reviewed_at: datetime | None = None
    answer: str = ""
    notes: str | None = None

    @field_validator("reviewed_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @classmethod
    def parse(cls, data: ReviewEvent | dict[str, Any]) -> ReviewEvent:
        """
        Build a validated event, converting pydantic errors into ReviewValidationError.

        Args:
            data: Raw mapping (e.g. from CLI or HTTP) or an existing event

        Raises:
            ReviewValidationError: If any field is missing or out of range
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ReviewValidationError(
                f"Invalid review event ({fields})",
                errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
            ) from e


# =============================================================================
# Derived records
# =============================================================================


@dataclass(frozen=True)
class PerformanceSnapshot:
    """
    Append-only performance record derived from one review.

    speed is responses per minute (60 / seconds spent); accuracy 0-100.
    """

    timestamp: datetime
    item_id: str
    accuracy: float
    speed: float
    confidence: int
    streak_at_time: int
    context_tag: str
    self_rating: SelfRating = SelfRating.GOOD
    hints_used: int = 0
    time_spent_seconds: float = 0.0
    retention_score: float = 0.0
    # Adaptation rule that changed the item's tier on this review
    adaptation_rule: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["self_rating"] = self.self_rating.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceSnapshot:
        return cls(
            timestamp=ensure_utc(datetime.fromisoformat(data["timestamp"])),
            item_id=data["item_id"],
            accuracy=float(data["accuracy"]),
            speed=float(data["speed"]),
            confidence=int(data["confidence"]),
            streak_at_time=int(data.get("streak_at_time", 0)),
            context_tag=data.get("context_tag", ""),
            self_rating=SelfRating(data.get("self_rating", "good")),
            hints_used=int(data.get("hints_used", 0)),
            time_spent_seconds=float(data.get("time_spent_seconds", 0.0)),
            retention_score=float(data.get("retention_score", 0.0)),
            adaptation_rule=data.get("adaptation_rule"),
        )


@dataclass
class ScheduleSession:
    """A planned, time-boxed revision session. Regenerated every planning cycle."""

    session_id: str
    window_start: datetime
    window_end: datetime
    session_type: SessionType
    ordered_item_ids: list[str] = field(default_factory=list)
    estimated_duration_minutes: int = 0
    priority_score: float = 0.0

    def overlaps(self, other: ScheduleSession) -> bool:
        """Half-open [start, end) interval intersection."""
        return self.window_start < other.window_end and other.window_start < self.window_end

    @property
    def item_count(self) -> int:
        return len(self.ordered_item_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "session_type": self.session_type.value,
            "ordered_item_ids": list(self.ordered_item_ids),
            "estimated_duration_minutes": self.estimated_duration_minutes,
            "priority_score": self.priority_score,
        }


class SchedulePreferences(BaseModel):
    """Learner preferences for daily planning."""

    morning_time: time = time(7, 0)
    subject_cycle_time: time = time(16, 0)
    weekend_time: time = time(10, 0)
    evening_time: time = time(20, 0)
    catch_up_time: time = time(21, 0)
    session_minutes: dict[SessionType, int] = Field(default_factory=dict)
    max_daily_minutes: int = Field(default=120, ge=0)
    include_upcoming: bool = True

    def start_time(self, session_type: SessionType) -> time:
        return {
            SessionType.MORNING_INTENSIVE: self.morning_time,
            SessionType.SUBJECT_CYCLE: self.subject_cycle_time,
            SessionType.WEEKEND_COMPREHENSIVE: self.weekend_time,
            SessionType.EVENING_RECALL: self.evening_time,
            SessionType.CATCH_UP: self.catch_up_time,
        }[session_type]

    def minutes_for(self, session_type: SessionType) -> int:
        return self.session_minutes.get(session_type, session_type.default_minutes)
