"""Initial schema: users, coaches, ledger, bookings, courses, coach requests.

Revision ID: 20260301_0900
Revises:
Create Date: 2026-03-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers
revision: str = "20260301_0900"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

transaction_type = sa.Enum("TOPUP", "SPEND", name="transactiontype")
booking_status = sa.Enum("CONFIRMED", "CANCELLED", name="bookingstatus")
course_status = sa.Enum("PENDING", "READY", "FAILED", name="coursestatus")
coach_request_status = sa.Enum(
    "PENDING", "PROCESSING", "DONE", "FAILED", name="coachrequeststatus"
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        _created_at(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "coaches",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("slug", sa.String(128), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("headline", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("level", sa.String(32), nullable=True),
        sa.Column("training_type", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_coaches_slug", "coaches", ["slug"], unique=True)

    # Append-only ledger; a balance is SUM(amount) per user
    op.create_table(
        "token_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("external_ref", sa.String(255), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "(type = 'TOPUP' AND amount > 0) OR (type = 'SPEND' AND amount < 0)",
            name="ck_token_transactions_amount_sign",
        ),
    )
    op.create_index("ix_token_transactions_id", "token_transactions", ["id"])
    op.create_index("ix_token_transactions_user_id", "token_transactions", ["user_id"])
    op.create_index("ix_token_transactions_type", "token_transactions", ["type"])
    op.create_index(
        "ix_token_transactions_external_ref", "token_transactions", ["external_ref"], unique=True
    )
    op.create_index("ix_token_transactions_created_at", "token_transactions", ["created_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "coach_id",
            sa.String(64),
            sa.ForeignKey("coaches.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("coach_slug", sa.String(128), nullable=False),
        sa.Column("coach_name", sa.String(255), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("tokens_charged", sa.Integer(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("token_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_coach_status_date", "bookings", ["coach_id", "status", "date"])

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("options", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", course_status, nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("images", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("nutrition_advice", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("tokens_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generation", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("pdf_url", sa.String(1024), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_courses_id", "courses", ["id"])
    op.create_index("ix_courses_user_id", "courses", ["user_id"])
    op.create_index("ix_courses_created_at", "courses", ["created_at"])

    op.create_table(
        "coach_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "coach_id",
            sa.String(64),
            sa.ForeignKey("coaches.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("coach_slug", sa.String(128), nullable=False),
        sa.Column(
            "course_id",
            sa.Integer(),
            sa.ForeignKey("courses.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("goal", sa.String(32), nullable=False),
        sa.Column("level", sa.String(32), nullable=False),
        sa.Column("training_type", sa.String(32), nullable=False),
        sa.Column("equipment", sa.String(32), nullable=False),
        sa.Column("days_per_week", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", coach_request_status, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("tokens_charged", sa.Integer(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("token_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_coach_requests_id", "coach_requests", ["id"])
    op.create_index("ix_coach_requests_user_id", "coach_requests", ["user_id"])
    op.create_index("ix_coach_requests_status", "coach_requests", ["status"])
    op.create_index("ix_coach_requests_created_at", "coach_requests", ["created_at"])


def downgrade() -> None:
    op.drop_table("coach_requests")
    op.drop_table("courses")
    op.drop_table("bookings")
    op.drop_table("token_transactions")
    op.drop_table("coaches")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (coach_request_status, course_status, booking_status, transaction_type):
        enum_type.drop(bind, checkfirst=True)
