"""Pydantic schemas for coach session bookings."""

from datetime import date as date_type
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.database import as_utc
from app.models.booking import BookingStatus


class BookingCreate(BaseModel):
    """Request model for booking a session.

    ``date`` is the session start. A value without an offset is read as UTC.
    """

    coach_id: str = Field(min_length=1, max_length=64, description="Coach identifier")
    coach_slug: str = Field(min_length=1, max_length=128, description="Coach slug at booking time")
    coach_name: str = Field(min_length=1, max_length=255, description="Coach name at booking time")
    date: datetime = Field(description="Session start (ISO-8601)")
    duration_hours: int = Field(description="Session length in hours (1, 2 or 3)")
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("date")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class BookingResponse(BaseModel):
    id: int
    coach_id: str
    coach_slug: str
    coach_name: str
    date: datetime
    duration_hours: int
    status: BookingStatus
    tokens_charged: int
    notes: Optional[str] = None
    created_at: datetime

    @field_validator("date", "created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True


class BookingCreateResponse(BaseModel):
    success: bool = True
    booking: BookingResponse
    new_balance: int = Field(description="Balance after the session was paid for")


class AvailabilityResponse(BaseModel):
    coach_id: str
    day: date_type
    duration_hours: int
    slots: list[datetime] = Field(description="Free session start times (UTC)")
