"""
Pydantic schemas for booking-related request/response validation.

Range and calendar checks live in the booking service so every caller
(HTTP, admin, tests) gets the same 400 responses; the schemas only shape data.
"""

from datetime import date as DateType, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    date: DateType
    meal_type: str = Field(..., alias="mealType")
    persons: int
    # Optional client-side total; rejected if it disagrees with the catalog
    amount: Optional[Decimal] = None

    model_config = {"populate_by_name": True}


class BookingCreatedResponse(BaseModel):
    booking_id: int
    status: str
    amount: Decimal
    checkout_url: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    user_id: int
    date: DateType
    meal_type: str
    persons: int
    amount: Decimal
    status: str
    ticket_id: Optional[str] = None
    ticket_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    count: int
