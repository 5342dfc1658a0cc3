"""Token ledger model."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.database import Base, JSONType, utcnow


class TransactionType(str, enum.Enum):
    """Transaction types for token operations."""

    TOPUP = "topup"  # Purchases, grants and refunds (positive amount)
    SPEND = "spend"  # Bookings, coach requests, courses, regenerations (negative amount)


class TokenTransaction(Base):
    """
    Immutable ledger entry for all token operations.

    This table is append-only. Never UPDATE or DELETE records; a
    correction is a new offsetting row. A user's balance is the sum of
    ``amount`` over their rows.
    """

    __tablename__ = "token_transactions"
    __table_args__ = (
        CheckConstraint(
            "(type = 'TOPUP' AND amount > 0) OR (type = 'SPEND' AND amount < 0)",
            name="ck_token_transactions_amount_sign",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Foreign key to user
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Transaction details
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False
    )  # Positive for topup, negative for spend

    # Payment reference, for top-up idempotency
    external_ref: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )

    # Reason and context (JSON) - Note: 'metadata' is reserved by SQLAlchemy
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<TokenTransaction(id={self.id}, type={self.type.value}, amount={self.amount})>"
