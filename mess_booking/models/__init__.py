from mess_booking.models.user import User, UserRole
from mess_booking.models.booking import Booking, BookingStatus, MealType

__all__ = ["User", "UserRole", "Booking", "BookingStatus", "MealType"]
