"""Initial schema: users and bookings with lifecycle constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("student_id", sa.String(50), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('student', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("meal_type", sa.String(20), nullable=False),
        sa.Column("persons", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("checkout_session_id", sa.String(255), nullable=True),
        sa.Column("ticket_id", sa.String(64), nullable=True),
        sa.Column("ticket_pdf_path", sa.String(500), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("ticket_id", name="uq_bookings_ticket_id"),
        sa.CheckConstraint("persons BETWEEN 1 AND 10", name="check_booking_persons_range"),
        sa.CheckConstraint("amount > 0", name="check_booking_amount_positive"),
        sa.CheckConstraint(
            "meal_type IN ('breakfast', 'lunch', 'dinner')", name="check_booking_meal_type"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'cancelled')", name="check_booking_status"
        ),
        # The paid transition writes status and ticket_id in one UPDATE;
        # this rejects any write that would separate them.
        sa.CheckConstraint(
            "(status = 'paid' AND ticket_id IS NOT NULL) "
            "OR (status <> 'paid' AND ticket_id IS NULL)",
            name="check_booking_ticket_iff_paid",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Admin dashboard filters by status and date range
    op.create_index("ix_bookings_status_date", "bookings", ["status", "date"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("users")
