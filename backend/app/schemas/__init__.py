"""Pydantic schemas for API requests and responses."""

from app.schemas.booking import BookingCreate, BookingResponse
from app.schemas.coach import CoachResponse
from app.schemas.coach_request import CoachRequestCreate, CoachRequestResponse
from app.schemas.course import CourseOptions, CourseResponse, RegenerateRequest
from app.schemas.token import Currency, TokenBalanceResponse, TopupRequest

__all__ = [
    # Booking schemas
    "BookingCreate",
    "BookingResponse",
    # Coach schemas
    "CoachResponse",
    "CoachRequestCreate",
    "CoachRequestResponse",
    # Course schemas
    "CourseOptions",
    "CourseResponse",
    "RegenerateRequest",
    # Token schemas
    "Currency",
    "TokenBalanceResponse",
    "TopupRequest",
]
