"""SQLAlchemy models for Coachly."""

from app.models.booking import Booking, BookingStatus
from app.models.coach import Coach
from app.models.coach_request import CoachRequest, CoachRequestStatus, InvalidTransitionError
from app.models.course import Course, CourseStatus
from app.models.transaction import TokenTransaction, TransactionType
from app.models.user import User

__all__ = [
    "User",
    "Coach",
    "TokenTransaction",
    "TransactionType",
    "Booking",
    "BookingStatus",
    "CoachRequest",
    "CoachRequestStatus",
    "InvalidTransitionError",
    "Course",
    "CourseStatus",
]
