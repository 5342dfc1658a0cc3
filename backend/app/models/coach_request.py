"""Coach request model for personalised plan orders.

A coach request is paid for up front, generated in the background by
arq jobs and released to the customer once ``available_at`` has passed.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.database import Base, utcnow


class CoachRequestStatus(str, enum.Enum):
    """Coach request statuses.

    State transitions:
    - PENDING -> PROCESSING (worker picks up the request)
    - PROCESSING -> DONE (course linked and delivery time reached)
    - PROCESSING -> FAILED (generation gave up)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[CoachRequestStatus, frozenset[CoachRequestStatus]] = {
    CoachRequestStatus.PENDING: frozenset({CoachRequestStatus.PROCESSING}),
    CoachRequestStatus.PROCESSING: frozenset(
        {CoachRequestStatus.DONE, CoachRequestStatus.FAILED}
    ),
    CoachRequestStatus.DONE: frozenset(),
    CoachRequestStatus.FAILED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised on a status change the state machine does not allow."""


class CoachRequest(Base):
    """A paid request for a coach-authored training plan."""

    __tablename__ = "coach_requests"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Foreign keys
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coach_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("coaches.id", ondelete="RESTRICT"), nullable=False
    )
    coach_slug: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True
    )  # Set exactly once, before DONE

    # Selections
    goal: Mapped[str] = mapped_column(String(32), nullable=False)
    level: Mapped[str] = mapped_column(String(32), nullable=False)
    training_type: Mapped[str] = mapped_column(String(32), nullable=False)
    equipment: Mapped[str] = mapped_column(String(32), nullable=False)
    days_per_week: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[CoachRequestStatus] = mapped_column(
        Enum(CoachRequestStatus),
        default=CoachRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Billing
    tokens_charged: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("token_transactions.id", ondelete="SET NULL"), nullable=True
    )

    # Delivery
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    # Relationships
    course: Mapped[Optional["Course"]] = relationship("Course", lazy="raise")

    def __repr__(self) -> str:
        return f"<CoachRequest(id={self.id}, status={self.status.value}, course={self.course_id})>"

    @property
    def is_terminal(self) -> bool:
        """DONE and FAILED accept no further transitions."""
        return self.status in (CoachRequestStatus.DONE, CoachRequestStatus.FAILED)

    def transition_to(self, new_status: CoachRequestStatus) -> None:
        """Move to ``new_status`` or raise InvalidTransitionError."""
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Coach request {self.id}: {self.status.value} -> {new_status.value} not allowed"
            )
        if new_status == CoachRequestStatus.DONE and self.course_id is None:
            raise InvalidTransitionError(
                f"Coach request {self.id} cannot be done without a linked course"
            )
        self.status = new_status
