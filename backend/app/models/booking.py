"""Booking model for paid coach sessions."""

import enum
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base, as_utc, utcnow


class BookingStatus(str, enum.Enum):
    """Booking lifecycle. Only confirmed bookings occupy the calendar."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base):
    """A session booked with a coach.

    The session occupies the half-open window
    ``[date, date + duration_hours)``. Coach slug and name are snapshots
    taken at booking time.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_coach_status_date", "coach_id", "status", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coach_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("coaches.id", ondelete="RESTRICT"), nullable=False
    )
    coach_slug: Mapped[str] = mapped_column(String(128), nullable=False)
    coach_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Session window (start instant, UTC)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False
    )
    tokens_charged: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("token_transactions.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    @property
    def starts_at(self) -> datetime:
        return as_utc(self.date)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(hours=self.duration_hours)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, coach={self.coach_id}, date={self.date})>"
