"""
Booking model representing a meal reservation and its payment lifecycle.

Key design decisions:
- status only moves pending -> paid or pending -> cancelled; both are terminal
- ticket_id is set in the same UPDATE that moves a booking to paid, and the
  CHECK constraint ties the two together at the DB level
- amount is fixed at creation from the price catalog and never recomputed
- ticket_pdf_path may stay NULL on a paid booking when rendering failed
"""

from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Numeric,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from mess_booking.core.config import get_settings
from mess_booking.db.base import Base, TimestampMixin


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class BookingStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({BookingStatus.PAID, BookingStatus.CANCELLED})

MIN_PERSONS = 1
MAX_PERSONS = 10


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    meal_type = Column(String(20), nullable=False)
    persons = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    checkout_session_id = Column(String(255), nullable=True)
    ticket_id = Column(String(64), nullable=True, unique=True)
    ticket_pdf_path = Column(String(500), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            f"persons BETWEEN {MIN_PERSONS} AND {MAX_PERSONS}", name="check_booking_persons_range"
        ),
        CheckConstraint("amount > 0", name="check_booking_amount_positive"),
        CheckConstraint(
            "meal_type IN ('breakfast', 'lunch', 'dinner')", name="check_booking_meal_type"
        ),
        CheckConstraint(
            "status IN ('pending', 'paid', 'cancelled')", name="check_booking_status"
        ),
        # A ticket exists exactly when the booking is paid
        CheckConstraint(
            "(status = 'paid' AND ticket_id IS NOT NULL) "
            "OR (status <> 'paid' AND ticket_id IS NULL)",
            name="check_booking_ticket_iff_paid",
        ),
        # Admin filters: status + date range
        Index("ix_bookings_status_date", "status", "date"),
    )

    @property
    def is_terminal(self) -> bool:
        return BookingStatus(self.status) in TERMINAL_STATUSES

    @property
    def ticket_url(self) -> Optional[str]:
        if not self.ticket_pdf_path:
            return None
        prefix = get_settings().TICKETS_URL_PREFIX.rstrip("/")
        return f"{prefix}/{self.ticket_id}.pdf"

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, status={self.status})>"
