"""
Booking persistence with an atomic conditional status transition.

CONCURRENCY STRATEGY: Compare-and-set on status
================================================

Problem:
  A user cancels a booking at the same moment the payment provider reports
  it as paid (or the provider delivers the same notification twice, in
  parallel). Read-then-write lets both requests see "pending" and both write,
  leaving a cancelled booking with a ticket or a ticket issued twice.

Solution:
  Every status change is one statement:

    UPDATE bookings SET status = :to, ...
    WHERE id = :id AND status = :from

  rowcount == 1 means this request won; rowcount == 0 means another request
  moved the booking first and the caller re-reads to learn what happened.
  No row locks are held across requests and no retry loop is needed: a
  booking leaves "pending" at most once.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.models.booking import Booking, BookingStatus
from mess_booking.core.logging import get_logger

logger = get_logger(__name__)


class BookingStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, booking: Booking) -> Booking:
        self.db.add(booking)
        await self.db.flush()
        await self.db.refresh(booking)
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        # populate_existing so a re-read after a lost race sees the winner's row
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: int) -> list[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.user_id == owner_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(result.scalars().all())

    async def list_filtered(
        self,
        status: Optional[BookingStatus] = None,
        meal_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[Booking]:
        query = select(Booking)
        if status is not None:
            query = query.where(Booking.status == status.value)
        if meal_type is not None:
            query = query.where(Booking.meal_type == meal_type)
        if start_date is not None:
            query = query.where(Booking.date >= start_date)
        if end_date is not None:
            query = query.where(Booking.date <= end_date)
        query = query.order_by(Booking.created_at.desc(), Booking.id.desc())
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def set_checkout_session(self, booking_id: int, session_id: str) -> None:
        await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.checkout_session_id.is_(None))
            .values(checkout_session_id=session_id)
        )

    async def transition(
        self,
        booking_id: int,
        from_status: BookingStatus,
        to_status: BookingStatus,
        **values,
    ) -> bool:
        """
        Move a booking from `from_status` to `to_status` in one statement.
        Extra column values are written in the same UPDATE.
        Returns True only for the request that performed the transition.
        """
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == from_status.value)
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        won = result.rowcount == 1
        logger.debug(
            "booking_transition_attempt",
            booking_id=booking_id,
            from_status=from_status.value,
            to_status=to_status.value,
            applied=won,
        )
        return won

    async def attach_artifact(self, booking_id: int, ticket_id: str, path: str) -> bool:
        """Record the artifact path once, for the ticket the booking was paid with."""
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.PAID.value,
                Booking.ticket_id == ticket_id,
                Booking.ticket_pdf_path.is_(None),
            )
            .values(ticket_pdf_path=path)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
