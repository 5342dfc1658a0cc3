"""Pydantic schemas for coach requests and their pricing preview."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.database import as_utc
from app.models.coach_request import CoachRequest, CoachRequestStatus
from app.services.pricing import (
    MAX_DAYS_PER_WEEK,
    MIN_DAYS_PER_WEEK,
    Equipment,
    Goal,
    Level,
    TrainingType,
)


class CoachRequestSelections(BaseModel):
    """The priced part of a coach request."""

    level: Level
    training_type: TrainingType
    equipment: Equipment
    days_per_week: int = Field(ge=MIN_DAYS_PER_WEEK, le=MAX_DAYS_PER_WEEK)

    @field_validator("level", mode="before")
    @classmethod
    def parse_level(cls, value: Any) -> Level:
        return Level(value)

    @field_validator("training_type", mode="before")
    @classmethod
    def parse_training_type(cls, value: Any) -> TrainingType:
        return TrainingType(value)

    @field_validator("equipment", mode="before")
    @classmethod
    def parse_equipment(cls, value: Any) -> Equipment:
        return Equipment(value)


class CoachRequestCreate(CoachRequestSelections):
    coach_id: str = Field(min_length=1, max_length=64)
    goal: Goal
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("goal", mode="before")
    @classmethod
    def parse_goal(cls, value: Any) -> Goal:
        return Goal(value)


class CoachRequestCostBreakdownResponse(BaseModel):
    base: int
    level_add: int
    training_type_add: int
    equipment_add: int
    days_add: int
    total: int


class CoachRequestResponse(BaseModel):
    """A coach request as its owner sees it.

    ``course_id`` and ``pdf_url`` stay hidden until the request is done.
    """

    id: int
    coach_id: str
    coach_slug: str
    goal: str
    level: str
    training_type: str
    equipment: str
    days_per_week: int
    notes: Optional[str] = None
    status: CoachRequestStatus
    tokens_charged: int
    available_at: datetime
    error: Optional[str] = None
    course_id: Optional[int] = None
    pdf_url: Optional[str] = None
    created_at: datetime

    @field_validator("available_at", "created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_request(
        cls, request: CoachRequest, pdf_url: Optional[str] = None
    ) -> "CoachRequestResponse":
        released = request.status == CoachRequestStatus.DONE
        return cls(
            id=request.id,
            coach_id=request.coach_id,
            coach_slug=request.coach_slug,
            goal=request.goal,
            level=request.level,
            training_type=request.training_type,
            equipment=request.equipment,
            days_per_week=request.days_per_week,
            notes=request.notes,
            status=request.status,
            tokens_charged=request.tokens_charged,
            available_at=request.available_at,
            error=request.error,
            course_id=request.course_id if released else None,
            pdf_url=pdf_url if released else None,
            created_at=request.created_at,
        )


class CoachRequestSubmitResponse(BaseModel):
    success: bool = True
    request: CoachRequestResponse
    new_balance: int
