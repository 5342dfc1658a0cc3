"""Pydantic schemas for AI-generated courses and pricing previews."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.database import as_utc
from app.models.course import CourseStatus
from app.services.pricing import (
    COURSE_DEFAULT_SESSIONS_PER_WEEK,
    COURSE_DEFAULT_WEEKS,
    COURSE_MAX_IMAGES,
    COURSE_MAX_WEEKS,
    MAX_DAYS_PER_WEEK,
    MIN_DAYS_PER_WEEK,
    CourseCostBreakdown,
    Gender,
    PdfMode,
    RegenerationScope,
    calc_full_course_tokens,
)

WORKOUT_TYPES: tuple[str, ...] = (
    "HIIT (High-Intensity Intervals)",
    "Tabata (20/10 protocol)",
    "EMOM (Every Minute On the Minute)",
    "AMRAP (As Many Rounds/Reps)",
    "Circuit Training",
    "Full-Body Strength",
    "Upper/Lower Split",
    "Push / Pull / Legs (PPL)",
    "Hypertrophy (Bodybuilding)",
    "Powerlifting Fundamentals (SQ/BN/DL)",
    "Olympic-style Technique (light/skill)",
    "Kettlebell Training",
    "Dumbbell-only",
    "Barbell-only",
    "Machines & Cables only",
    "Resistance Bands / Mini-bands",
    "TRX / Suspension",
    "Calisthenics (Bodyweight)",
    "Rings Fundamentals",
    "Plyometrics (Jump Training)",
    "Mobility & Flexibility",
    "Core & Stability",
    "Low-Impact / Joint-friendly",
    "Home Minimal Equipment",
    "Commercial Gym Program",
    "Running Intervals / Sprints",
    "Rowing Erg Intervals",
    "Indoor Cycling Intervals",
    "Boxing / Kickboxing Conditioning",
    "Strongman-Lite (Carries / Sled / Sandbag)",
)

_WORKOUT_TYPE_LOOKUP = {name.lower(): name for name in WORKOUT_TYPES}
MAX_TARGET_MUSCLES = 20


def _dedupe(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


class CourseOptions(BaseModel):
    """Generation parameters for a course. Also the input of the course quote."""

    weeks: int = Field(default=COURSE_DEFAULT_WEEKS, ge=1, le=COURSE_MAX_WEEKS)
    sessions_per_week: int = Field(
        default=COURSE_DEFAULT_SESSIONS_PER_WEEK, ge=MIN_DAYS_PER_WEEK, le=MAX_DAYS_PER_WEEK
    )
    injury_safe: bool = False
    special_equipment: bool = False
    nutrition_tips: bool = False
    pdf: PdfMode = Field(default=PdfMode.TEXT, description="text or illustrated")
    images: int = Field(default=0, ge=0, le=COURSE_MAX_IMAGES, description="Illustrations (illustrated PDF)")
    workout_types: list[str] = Field(default_factory=list)
    target_muscles: list[str] = Field(default_factory=list)
    gender: Gender = Gender.MALE
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("pdf", mode="before")
    @classmethod
    def parse_pdf_mode(cls, value: Any) -> PdfMode:
        return PdfMode(value)

    @field_validator("gender", mode="before")
    @classmethod
    def parse_gender(cls, value: Any) -> Gender:
        return Gender(value)

    @field_validator("workout_types")
    @classmethod
    def check_workout_types(cls, value: list[str]) -> list[str]:
        canonical = []
        for name in value:
            match = _WORKOUT_TYPE_LOOKUP.get(name.strip().lower())
            if match is None:
                raise ValueError(f"Unknown workout type '{name}'")
            canonical.append(match)
        return _dedupe(canonical)

    @field_validator("target_muscles")
    @classmethod
    def check_target_muscles(cls, value: list[str]) -> list[str]:
        muscles = _dedupe([name.strip() for name in value if name.strip()])
        if len(muscles) > MAX_TARGET_MUSCLES:
            raise ValueError(f"At most {MAX_TARGET_MUSCLES} target muscles")
        return muscles

    def quote(self) -> CourseCostBreakdown:
        return calc_full_course_tokens(
            weeks=self.weeks,
            sessions_per_week=self.sessions_per_week,
            injury_safe=self.injury_safe,
            special_equipment=self.special_equipment,
            nutrition_tips=self.nutrition_tips,
            pdf=self.pdf,
            images=self.images,
            workout_types_count=len(self.workout_types),
            target_muscles_count=len(self.target_muscles),
        )


class CourseCostBreakdownResponse(BaseModel):
    base: int
    injury_safe: int
    special_equipment: int
    nutrition_tips: int
    pdf: int
    workout_types: int
    target_muscles: int
    total: int


class CourseResponse(BaseModel):
    id: int
    title: str
    status: CourseStatus
    options: dict
    content: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    nutrition_advice: Optional[str] = None
    tokens_spent: int
    generation: int
    pdf_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True


class CoursePublishResponse(BaseModel):
    success: bool = True
    course: CourseResponse
    tokens_spent: int
    new_balance: int


class RegenerateRequest(BaseModel):
    """Regenerate one day or one whole week of a ready course."""

    scope: RegenerationScope
    week: int = Field(ge=1, le=COURSE_MAX_WEEKS)
    day: Optional[int] = Field(default=None, ge=1, le=MAX_DAYS_PER_WEEK)

    @field_validator("scope", mode="before")
    @classmethod
    def parse_scope(cls, value: Any) -> RegenerationScope:
        return RegenerationScope(value)

    @model_validator(mode="after")
    def check_day(self) -> "RegenerateRequest":
        if self.scope == RegenerationScope.DAY and self.day is None:
            raise ValueError("day is required when regenerating a single day")
        if self.scope == RegenerationScope.WEEK:
            self.day = None
        return self


class RegenerateResponse(BaseModel):
    success: bool = True
    course_id: int
    tokens_spent: int = Field(description="Tokens charged for this regeneration")
    course_tokens_spent: int = Field(description="Cumulative tokens spent on the course")
    new_balance: int
