"""
Planning router.

Endpoints for daily schedules, catch-up sessions, exam readiness and
difficulty insights.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from revision_scheduler.api.dependencies import get_service
from revision_scheduler.core.models import ScheduleSession, SchedulePreferences, SessionType
from revision_scheduler.service import RevisionService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class SessionResponse(BaseModel):
    session_id: str
    window_start: datetime
    window_end: datetime
    session_type: SessionType
    ordered_item_ids: list[str]
    estimated_duration_minutes: int
    priority_score: float

    @classmethod
    def from_session(cls, session: ScheduleSession) -> SessionResponse:
        return cls(**session.to_dict())


class ScheduleResponse(BaseModel):
    learner_id: str
    day: date
    priority: str
    sessions: list[SessionResponse]


class ScheduleRequest(BaseModel):
    day: date | None = None
    preferences: SchedulePreferences | None = None


class CatchUpRequest(BaseModel):
    missed_item_ids: list[str] = Field(min_length=1)
    day: date | None = None
    preferences: SchedulePreferences | None = None


class CatchUpResponse(BaseModel):
    learner_id: str
    day: date
    sessions: list[SessionResponse]


class ReadinessResponse(BaseModel):
    learner_id: str
    exam_date: date
    today: date
    readiness: float


# ========================================
# Schedule Endpoints
# ========================================


@router.post("/{learner_id}/schedule", response_model=ScheduleResponse, summary="Build a schedule")
def build_schedule(
    learner_id: str,
    request: ScheduleRequest | None = None,
    service: RevisionService = Depends(get_service),
) -> ScheduleResponse:
    """Build the day's revision sessions (defaults to today)."""
    request = request or ScheduleRequest()
    day = request.day or service.today()
    sessions = service.build_schedule(learner_id, day, request.preferences)
    return ScheduleResponse(
        learner_id=learner_id,
        day=day,
        priority=service.schedule_priority(learner_id, day),
        sessions=[SessionResponse.from_session(s) for s in sessions],
    )


@router.post("/{learner_id}/catch-up", response_model=CatchUpResponse, summary="Plan catch-up")
def build_catch_up(
    learner_id: str,
    request: CatchUpRequest,
    service: RevisionService = Depends(get_service),
) -> CatchUpResponse:
    """Place missed items into catch-up sessions around the day's schedule."""
    day = request.day or service.today()
    sessions = service.build_catch_up(
        learner_id, day, request.missed_item_ids, request.preferences
    )
    logger.info(f"Catch-up planned for {learner_id}: {len(sessions)} sessions")
    return CatchUpResponse(
        learner_id=learner_id,
        day=day,
        sessions=[SessionResponse.from_session(s) for s in sessions],
    )


# ========================================
# Analytics Endpoints
# ========================================


@router.get("/{learner_id}/readiness", response_model=ReadinessResponse, summary="Exam readiness")
def exam_readiness(
    learner_id: str,
    exam_date: date | None = None,
    today: date | None = None,
    service: RevisionService = Depends(get_service),
) -> ReadinessResponse:
    """Readiness percentage; exam_date falls back to the configured one."""
    today = today or service.today()
    readiness = service.get_exam_readiness(learner_id, exam_date, today)
    return ReadinessResponse(
        learner_id=learner_id,
        exam_date=exam_date or service.exam_date,
        today=today,
        readiness=readiness,
    )


@router.get("/{learner_id}/insights", summary="Difficulty insights")
def difficulty_insights(
    learner_id: str,
    service: RevisionService = Depends(get_service),
) -> dict[str, Any]:
    return service.difficulty_insights(learner_id).to_dict()


@router.get("/{learner_id}/recommendations", summary="Tier recommendations")
def tier_recommendations(
    learner_id: str,
    service: RevisionService = Depends(get_service),
) -> dict[str, Any]:
    """Rule-table tier decision per item."""
    decisions = service.recommend_tiers(learner_id)
    return {
        "learner_id": learner_id,
        "recommendations": {item_id: d.to_dict() for item_id, d in decisions.items()},
    }
