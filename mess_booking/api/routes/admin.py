"""
Admin endpoints. Every route requires an authenticated admin.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.core.security import require_admin
from mess_booking.db.session import get_db
from mess_booking.models.user import User
from mess_booking.schemas.admin import BookingStatusUpdate, StatisticsResponse, UserRoleUpdate
from mess_booking.schemas.booking import BookingListResponse, BookingResponse
from mess_booking.schemas.user import UserResponse
from mess_booking.services import admin_service
from mess_booking.services.cache_service import invalidate_statistics_cache
from mess_booking.services.ticket_service import TicketGenerator, get_ticket_generator

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/bookings", response_model=BookingListResponse)
async def list_all_bookings(
    status: Optional[str] = Query(None),
    meal_type: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    bookings = await admin_service.list_bookings(db, status, meal_type, start_date, end_date)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        count=len(bookings),
    )


@router.get("/statistics", response_model=StatisticsResponse)
async def booking_statistics(db: AsyncSession = Depends(get_db)):
    """Totals per status, paid revenue, counts per meal type and recent bookings."""
    return await admin_service.get_statistics(db)


@router.get("/users", response_model=list[UserResponse])
async def list_all_users(db: AsyncSession = Depends(get_db)):
    return await admin_service.list_users(db)


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    update: BookingStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    generator: TicketGenerator = Depends(get_ticket_generator),
):
    """
    Confirm a pending booking as paid (issues its ticket) or cancel it.
    Paid and cancelled bookings cannot be changed.
    """
    booking = await admin_service.update_booking_status(
        db, generator, booking_id, update.status, admin
    )
    await invalidate_statistics_cache()
    return booking


@router.post("/bookings/{booking_id}/ticket", response_model=BookingResponse)
async def regenerate_ticket(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    generator: TicketGenerator = Depends(get_ticket_generator),
):
    """Render the ticket PDF for a paid booking that is missing one."""
    booking = await admin_service.regenerate_ticket(db, generator, booking_id)
    await invalidate_statistics_cache()
    return booking


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    update: UserRoleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.update_user_role(db, user_id, update.role, admin)
