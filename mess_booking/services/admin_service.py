"""
Admin operations: booking oversight, statistics and user roles.

Status changes made here go through the same transitions as users and the
payment webhook. An admin can confirm a pending booking as paid (the manual
path when no payment gateway is configured) or cancel it; nothing moves a
booking out of paid or cancelled.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.core.exceptions import BookingError, Conflict, NotFound, ValidationError
from mess_booking.core.logging import get_logger
from mess_booking.core.metrics import record_transition
from mess_booking.models.booking import Booking, BookingStatus, MealType
from mess_booking.models.user import User, UserRole
from mess_booking.schemas.admin import BookingStatistics, StatisticsResponse
from mess_booking.schemas.booking import BookingResponse
from mess_booking.services.booking_store import BookingStore
from mess_booking.services.cache_service import get_cached_statistics, set_cached_statistics
from mess_booking.services.ticket_service import TicketGenerator
from mess_booking.services.webhook_service import PaymentOutcome, confirm_payment, issue_ticket

logger = get_logger(__name__)

RECENT_BOOKINGS_LIMIT = 10


def _parse_status(value: str) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        raise ValidationError(
            "Invalid status. Must be: " + ", ".join(s.value for s in BookingStatus)
        )


async def list_bookings(
    db: AsyncSession,
    status: Optional[str] = None,
    meal_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[Booking]:
    if meal_type is not None and meal_type not in {m.value for m in MealType}:
        raise ValidationError(f"Invalid meal type '{meal_type}'")

    return await BookingStore(db).list_filtered(
        status=_parse_status(status) if status is not None else None,
        meal_type=meal_type,
        start_date=start_date,
        end_date=end_date,
    )


async def compute_statistics(db: AsyncSession) -> StatisticsResponse:
    status_rows = await db.execute(
        select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
    )
    by_status = {row[0]: row[1] for row in status_rows.all()}

    revenue = await db.scalar(
        select(func.coalesce(func.sum(Booking.amount), 0)).where(
            Booking.status == BookingStatus.PAID.value
        )
    )

    meal_rows = await db.execute(
        select(Booking.meal_type, func.count(Booking.id)).group_by(Booking.meal_type)
    )

    recent = await BookingStore(db).list_filtered(limit=RECENT_BOOKINGS_LIMIT)

    return StatisticsResponse(
        statistics=BookingStatistics(
            total_bookings=sum(by_status.values()),
            paid_bookings=by_status.get(BookingStatus.PAID.value, 0),
            pending_bookings=by_status.get(BookingStatus.PENDING.value, 0),
            cancelled_bookings=by_status.get(BookingStatus.CANCELLED.value, 0),
            total_revenue=Decimal(revenue or 0),
            meal_type_counts={row[0]: row[1] for row in meal_rows.all()},
        ),
        recent_bookings=[BookingResponse.model_validate(b) for b in recent],
    )


async def get_statistics(db: AsyncSession) -> StatisticsResponse:
    cached = await get_cached_statistics()
    if cached:
        return StatisticsResponse(**{**cached, "cached": True})

    response = await compute_statistics(db)
    await set_cached_statistics(response.model_dump(mode="json"))
    return response


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return list(result.scalars().all())


async def update_booking_status(
    db: AsyncSession,
    generator: TicketGenerator,
    booking_id: int,
    new_status: str,
    admin: User,
) -> Booking:
    target = _parse_status(new_status)
    store = BookingStore(db)

    booking = await store.get(booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")

    if booking.status == target.value:
        return booking

    if booking.is_terminal or target == BookingStatus.PENDING:
        raise Conflict(f"Cannot change booking from {booking.status} to {target.value}")

    if target == BookingStatus.PAID:
        outcome = await confirm_payment(db, generator, booking_id, source="admin")
        if outcome != PaymentOutcome.PAID:
            booking = await store.get(booking_id)
            raise Conflict(f"Booking is already {booking.status}")
    else:
        won = await store.transition(booking_id, BookingStatus.PENDING, BookingStatus.CANCELLED)
        await db.commit()
        if not won:
            booking = await store.get(booking_id)
            raise Conflict(f"Booking is already {booking.status}")
        record_transition(BookingStatus.CANCELLED.value)

    logger.info(
        "booking_status_updated_by_admin",
        booking_id=booking_id,
        status=target.value,
        admin_id=admin.id,
    )
    return await store.get(booking_id)


async def regenerate_ticket(
    db: AsyncSession,
    generator: TicketGenerator,
    booking_id: int,
) -> Booking:
    """Render the artifact for a paid booking whose earlier rendering failed."""
    store = BookingStore(db)
    booking = await store.get(booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    if booking.status != BookingStatus.PAID.value:
        raise Conflict(f"Booking is {booking.status}; only paid bookings have tickets")
    if booking.ticket_pdf_path:
        return booking

    path = await issue_ticket(db, generator, booking)
    if path is None:
        raise BookingError("Ticket generation failed")
    return await store.get(booking_id)


async def update_user_role(db: AsyncSession, user_id: int, role: str, admin: User) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")

    user.role = UserRole(role).value
    await db.flush()
    await db.refresh(user)

    logger.info("user_role_updated", user_id=user.id, role=user.role, admin_id=admin.id)
    return user
