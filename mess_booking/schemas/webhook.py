"""
Payment notification parsed from a verified webhook payload.
"""

from typing import Optional

from pydantic import BaseModel


class PaymentNotification(BaseModel):
    event_id: Optional[str] = None
    event_type: str
    booking_id: Optional[int] = None
    session_id: Optional[str] = None
    payment_status: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
