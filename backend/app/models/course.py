"""Course model for generated training plans."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base, JSONType, utcnow


class CourseStatus(str, enum.Enum):
    """Course content statuses.

    - PENDING: content (or a regenerated section) is being generated
    - READY: content available
    - FAILED: initial generation gave up; the spend was refunded
    """

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class Course(Base):
    """A generated multi-week training plan.

    ``tokens_spent`` accumulates the initial generation cost plus every
    regeneration. ``generation`` increments with every fresh generation;
    a PDF rendered for an older generation is never attached.
    """

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    options: Mapped[dict] = mapped_column(JSONType, nullable=False)  # Generation parameters
    status: Mapped[CourseStatus] = mapped_column(
        Enum(CourseStatus), default=CourseStatus.PENDING, nullable=False
    )

    # Generated content
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    nutrition_advice: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tokens_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    generation: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    pdf_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

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

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, status={self.status.value}, generation={self.generation})>"
