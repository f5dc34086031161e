"""
Booking endpoints: create, list, fetch and cancel the caller's bookings.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.db.session import get_db
from mess_booking.models.user import User
from mess_booking.schemas.booking import BookingCreate, BookingCreatedResponse, BookingResponse
from mess_booking.services.booking_service import (
    cancel_booking,
    create_booking,
    get_booking,
    get_user_bookings,
)
from mess_booking.services.cache_service import invalidate_statistics_cache
from mess_booking.services.payment_gateway import PaymentGateway, get_payment_gateway
from mess_booking.core.security import get_current_user, get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingCreatedResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Reserve a meal slot.

    The booking is stored as pending. With payments configured the response
    carries a checkout URL; otherwise the booking waits for an admin to
    confirm it.
    """
    created = await create_booking(db, gateway, user_id, booking_data)
    await invalidate_statistics_cache()
    return created


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user, newest first."""
    return await get_user_bookings(db, user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_booking(db, booking_id, user)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending booking. Paid bookings cannot be cancelled."""
    booking = await cancel_booking(db, booking_id, user)
    await invalidate_statistics_cache()
    return booking
