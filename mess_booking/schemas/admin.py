"""
Pydantic schemas for the admin surface.
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from mess_booking.schemas.booking import BookingResponse


class BookingStatusUpdate(BaseModel):
    status: str


class UserRoleUpdate(BaseModel):
    role: Literal["student", "admin"]


class BookingStatistics(BaseModel):
    total_bookings: int
    paid_bookings: int
    pending_bookings: int
    cancelled_bookings: int
    total_revenue: Decimal
    meal_type_counts: dict[str, int]


class StatisticsResponse(BaseModel):
    statistics: BookingStatistics
    recent_bookings: list[BookingResponse]
    cached: bool = False
