"""
Payment provider webhook. Trust comes from the Stripe-Signature header, not
from user credentials.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.db.session import get_db
from mess_booking.schemas.webhook import WebhookAck
from mess_booking.services.cache_service import invalidate_statistics_cache
from mess_booking.services.ticket_service import TicketGenerator, get_ticket_generator
from mess_booking.services.webhook_service import PaymentOutcome, process_webhook

router = APIRouter(prefix="/webhook", tags=["Payments"])


@router.post("", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    generator: TicketGenerator = Depends(get_ticket_generator),
):
    """
    Acknowledge every correctly signed event, including duplicates and
    events for unknown or cancelled bookings. Only a bad signature gets 400.
    """
    payload = await request.body()
    outcome = await process_webhook(db, generator, payload, stripe_signature)
    if outcome == PaymentOutcome.PAID:
        await invalidate_statistics_cache()
    return WebhookAck()
