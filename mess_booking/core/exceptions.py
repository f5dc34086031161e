"""
Domain errors for the booking lifecycle.

Errors a client can act on subclass HTTPException so services can raise them
directly and FastAPI renders the status code. TicketGenerationError is the
exception: it never leaves the server and is only logged.
"""

from typing import Optional

from fastapi import HTTPException, status


class BookingError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Booking error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid booking request"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Booking not found"


class AccessDenied(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed to access this booking"


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Booking is not in a state that allows this action"


class SignatureVerificationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Webhook signature verification failed"


class PaymentGatewayError(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment provider unavailable, booking kept as pending"


class TicketGenerationError(Exception):
    """Rendering or storing a ticket artifact failed."""

    def __init__(self, ticket_id: str, reason: str):
        self.ticket_id = ticket_id
        self.reason = reason
        super().__init__(f"Ticket {ticket_id}: {reason}")
