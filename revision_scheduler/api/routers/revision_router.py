"""
Revision router.

Endpoints for items, reviews, due lists and forgetting curves.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from revision_scheduler.api.dependencies import get_service
from revision_scheduler.core.models import RevisionItem, SelfRating
from revision_scheduler.service import RevisionService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class ReviewRequest(BaseModel):
    """One answer submission."""

    self_rating: SelfRating
    confidence: int = Field(ge=1, le=5)
    time_spent_seconds: float = Field(ge=0)
    hints_used: int = Field(default=0, ge=0)
    answer: str = ""
    notes: str | None = None


class ItemListResponse(BaseModel):
    learner_id: str
    count: int
    items: list[RevisionItem]


class ForgettingPointResponse(BaseModel):
    hours_elapsed: int
    predicted_retention: float
    recommended_action: str


class ForgettingCurveResponse(BaseModel):
    learner_id: str
    item_id: str
    points: list[ForgettingPointResponse]


# ========================================
# Item Endpoints
# ========================================


@router.post(
    "/items",
    response_model=RevisionItem,
    status_code=status.HTTP_201_CREATED,
    summary="Add a revision item",
)
def add_item(
    item: RevisionItem,
    service: RevisionService = Depends(get_service),
) -> RevisionItem:
    return service.add_item(item)


@router.get("/{learner_id}/items", response_model=ItemListResponse, summary="List items")
def list_items(
    learner_id: str,
    service: RevisionService = Depends(get_service),
) -> ItemListResponse:
    items = service.list_items(learner_id)
    return ItemListResponse(learner_id=learner_id, count=len(items), items=items)


@router.get("/{learner_id}/items/{item_id}", response_model=RevisionItem, summary="Get an item")
def get_item(
    learner_id: str,
    item_id: str,
    service: RevisionService = Depends(get_service),
) -> RevisionItem:
    return service.get_item(learner_id, item_id)


# ========================================
# Review Endpoints
# ========================================


@router.post(
    "/{learner_id}/items/{item_id}/reviews",
    response_model=RevisionItem,
    summary="Record a review",
)
def record_review(
    learner_id: str,
    item_id: str,
    request: ReviewRequest,
    service: RevisionService = Depends(get_service),
) -> RevisionItem:
    """Apply a review and return the updated item."""
    return service.record_review(learner_id, item_id, request.model_dump())


@router.get("/{learner_id}/due", response_model=ItemListResponse, summary="List due items")
def due_items(
    learner_id: str,
    as_of: date | None = None,
    service: RevisionService = Depends(get_service),
) -> ItemListResponse:
    items = service.get_due_items(learner_id, as_of)
    return ItemListResponse(learner_id=learner_id, count=len(items), items=items)


@router.get(
    "/{learner_id}/items/{item_id}/forgetting",
    response_model=ForgettingCurveResponse,
    summary="Predicted forgetting curve",
)
def forgetting_curve(
    learner_id: str,
    item_id: str,
    service: RevisionService = Depends(get_service),
) -> ForgettingCurveResponse:
    points = service.predict_forgetting(learner_id, item_id)
    return ForgettingCurveResponse(
        learner_id=learner_id,
        item_id=item_id,
        points=[ForgettingPointResponse(**p.to_dict()) for p in points],
    )
