from mess_booking.schemas.user import UserCreate, UserResponse, UserLogin, Token
from mess_booking.schemas.booking import (
    BookingCreate, BookingCreatedResponse, BookingResponse, BookingListResponse,
)
from mess_booking.schemas.webhook import PaymentNotification, WebhookAck
from mess_booking.schemas.admin import (
    BookingStatusUpdate, UserRoleUpdate, BookingStatistics, StatisticsResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "BookingCreate", "BookingCreatedResponse", "BookingResponse", "BookingListResponse",
    "PaymentNotification", "WebhookAck",
    "BookingStatusUpdate", "UserRoleUpdate", "BookingStatistics", "StatisticsResponse",
]
