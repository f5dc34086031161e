"""
Booking service: creation, retrieval and cancellation.

LIFECYCLE
=========

  create ──> pending ──(payment confirmed)──> paid       (terminal)
                │
                └──────(cancel)─────────────> cancelled  (terminal)

A booking is committed as pending before the payment provider is contacted,
so a provider outage leaves a pending booking behind rather than losing it.
Cancellation and the paid transition both go through
BookingStore.transition, a single conditional UPDATE; whichever request
reaches the row first wins and the other sees a no-op.
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.core.config import get_settings
from mess_booking.core.exceptions import (
    AccessDenied,
    Conflict,
    NotFound,
    PaymentGatewayError,
    ValidationError,
)
from mess_booking.core.logging import get_logger
from mess_booking.core.metrics import record_booking_creation, record_transition
from mess_booking.models.booking import MAX_PERSONS, MIN_PERSONS, Booking, BookingStatus, MealType
from mess_booking.models.user import User
from mess_booking.schemas.booking import BookingCreate, BookingCreatedResponse
from mess_booking.services import pricing
from mess_booking.services.booking_store import BookingStore
from mess_booking.services.payment_gateway import PaymentGateway

logger = get_logger(__name__)


def service_today() -> date:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


def validate_booking_request(data: BookingCreate, today: Optional[date] = None) -> None:
    """Raise ValidationError unless date, meal type, persons and amount are acceptable."""
    today = today or service_today()

    if data.date < today:
        raise ValidationError(f"Booking date {data.date.isoformat()} is in the past")

    if data.meal_type not in {m.value for m in MealType}:
        raise ValidationError(
            f"Invalid meal type '{data.meal_type}'. Must be one of: "
            + ", ".join(m.value for m in MealType)
        )

    if not MIN_PERSONS <= data.persons <= MAX_PERSONS:
        raise ValidationError(f"persons must be between {MIN_PERSONS} and {MAX_PERSONS}")

    if data.amount is not None:
        expected = pricing.total(data.meal_type, data.persons)
        if data.amount != expected:
            raise ValidationError(
                f"Amount {data.amount} does not match the price of {expected} "
                f"for {data.persons} x {data.meal_type}"
            )


async def create_booking(
    db: AsyncSession,
    gateway: PaymentGateway,
    owner_id: int,
    data: BookingCreate,
) -> BookingCreatedResponse:
    """
    Persist a pending booking and, when a gateway is configured, open a
    checkout session for it.
    """
    try:
        validate_booking_request(data)
    except ValidationError as e:
        record_booking_creation("invalid")
        logger.warning("booking_rejected", user_id=owner_id, reason=e.detail)
        raise

    store = BookingStore(db)
    booking = await store.insert(
        Booking(
            user_id=owner_id,
            date=data.date,
            meal_type=data.meal_type,
            persons=data.persons,
            amount=pricing.total(data.meal_type, data.persons),
            status=BookingStatus.PENDING.value,
        )
    )
    await db.commit()

    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=owner_id,
        meal_type=booking.meal_type,
        persons=booking.persons,
        amount=str(booking.amount),
        date=booking.date.isoformat(),
    )

    if not gateway.configured:
        record_booking_creation("pending")
        logger.info("payment_not_configured", booking_id=booking.id)
        return BookingCreatedResponse(
            booking_id=booking.id,
            status=booking.status,
            amount=booking.amount,
        )

    description = f"Mess Token - {booking.meal_type} ({booking.date.isoformat()})"
    try:
        session = await gateway.create_session(booking.id, booking.amount, description)
    except PaymentGatewayError:
        record_booking_creation("gateway_error")
        logger.error("booking_checkout_unavailable", booking_id=booking.id)
        raise

    await store.set_checkout_session(booking.id, session.session_id)
    await db.commit()

    record_booking_creation("checkout")
    return BookingCreatedResponse(
        booking_id=booking.id,
        status=booking.status,
        amount=booking.amount,
        checkout_url=session.url,
    )


def _ensure_can_access(booking: Booking, requester: User) -> None:
    if not requester.is_admin and booking.user_id != requester.id:
        logger.warning(
            "booking_access_denied",
            booking_id=booking.id,
            requester_id=requester.id,
        )
        raise AccessDenied()


async def get_booking(db: AsyncSession, booking_id: int, requester: User) -> Booking:
    booking = await BookingStore(db).get(booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    _ensure_can_access(booking, requester)
    return booking


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings for a user, newest first."""
    return await BookingStore(db).list_for_owner(user_id)


async def cancel_booking(db: AsyncSession, booking_id: int, requester: User) -> Booking:
    """
    Cancel a pending booking. Paid and cancelled bookings are terminal and
    answer with Conflict, including when a payment lands between our read and
    our write.
    """
    booking = await get_booking(db, booking_id, requester)
    if booking.status != BookingStatus.PENDING.value:
        raise Conflict(f"Booking is {booking.status} and can no longer be cancelled")

    store = BookingStore(db)
    won = await store.transition(booking.id, BookingStatus.PENDING, BookingStatus.CANCELLED)
    await db.commit()

    booking = await store.get(booking_id)
    if not won:
        logger.info(
            "booking_cancel_lost_race",
            booking_id=booking_id,
            current_status=booking.status,
        )
        raise Conflict(f"Booking is {booking.status} and can no longer be cancelled")

    record_transition(BookingStatus.CANCELLED.value)
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        user_id=booking.user_id,
        cancelled_by=requester.id,
    )
    return booking
