"""
Payment webhook processing.

IDEMPOTENCY STRATEGY
====================

Payment providers deliver at-least-once: the same checkout.session.completed
event can arrive twice, in parallel, or after the user cancelled. We do not
keep a table of processed event ids. The booking's own status is the
idempotency key:

  1. Verify the Stripe-Signature header (fail closed, no state change)
  2. Ignore event types that do not report a completed payment
  3. Unknown booking          -> acknowledge (provider must not retry forever)
  4. Already paid             -> acknowledge, nothing else (duplicate delivery)
  5. Cancelled                -> acknowledge, log anomaly, never resurrect
  6. Pending                  -> UPDATE ... SET status='paid', ticket_id=...
                                 WHERE id=:id AND status='pending'
     Only the request whose UPDATE matched renders the ticket.

Ticket rendering happens after the paid transition is committed. If it
fails the booking stays paid without an artifact path; money is the fact of
record and the artifact can be rendered again later from the admin surface.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from mess_booking.core.config import get_settings
from mess_booking.core.exceptions import SignatureVerificationError, TicketGenerationError
from mess_booking.core.logging import get_logger
from mess_booking.core.metrics import record_ticket_generation, record_transition, record_webhook
from mess_booking.models.booking import Booking, BookingStatus
from mess_booking.models.user import User
from mess_booking.schemas.webhook import PaymentNotification
from mess_booking.services.booking_store import BookingStore
from mess_booking.services.ticket_service import TicketGenerator, generate_ticket_id

logger = get_logger(__name__)

PAYMENT_COMPLETED_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})


class PaymentOutcome(str, Enum):
    PAID = "paid"
    DUPLICATE = "duplicate"
    AFTER_CANCEL = "after_cancel"
    UNKNOWN_BOOKING = "unknown_booking"
    IGNORED = "ignored"


def verify_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> dict:
    """Check the Stripe-Signature header and return the decoded event."""
    if not secret:
        logger.error("webhook_secret_not_configured")
        raise SignatureVerificationError("Webhook secret is not configured")
    if not signature:
        raise SignatureVerificationError("Missing Stripe-Signature header")

    try:
        text = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            text, signature, secret, get_settings().STRIPE_WEBHOOK_TOLERANCE
        )
        event = json.loads(text)
    except stripe.SignatureVerificationError as e:
        raise SignatureVerificationError(f"Invalid signature: {e}")
    except (UnicodeDecodeError, ValueError) as e:
        raise SignatureVerificationError(f"Malformed payload: {e}")

    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise SignatureVerificationError("Malformed payload: not an event object")
    return event


def parse_notification(event: dict) -> PaymentNotification:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    obj = obj if isinstance(obj, dict) else {}
    metadata = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}

    raw_booking_id = metadata.get("bookingId") or obj.get("client_reference_id")
    try:
        booking_id = int(raw_booking_id) if raw_booking_id is not None else None
    except (TypeError, ValueError):
        booking_id = None

    return PaymentNotification(
        event_id=event.get("id"),
        event_type=event["type"],
        booking_id=booking_id,
        session_id=obj.get("id"),
        payment_status=obj.get("payment_status"),
    )


def is_payment_completed(notification: PaymentNotification) -> bool:
    if notification.event_type not in PAYMENT_COMPLETED_EVENTS:
        return False
    # Delayed payment methods complete the session before the money arrives
    return notification.payment_status != "unpaid"


async def process_webhook(
    db: AsyncSession,
    generator: TicketGenerator,
    payload: bytes,
    signature: Optional[str],
) -> PaymentOutcome:
    try:
        event = verify_signature(payload, signature, get_settings().STRIPE_WEBHOOK_SECRET)
    except SignatureVerificationError as e:
        record_webhook("rejected")
        logger.warning("webhook_signature_invalid", error=e.detail)
        raise

    notification = parse_notification(event)
    log = logger.bind(
        event_id=notification.event_id,
        event_type=notification.event_type,
        booking_id=notification.booking_id,
    )

    if not is_payment_completed(notification):
        record_webhook(PaymentOutcome.IGNORED.value)
        log.info("webhook_event_ignored", payment_status=notification.payment_status)
        return PaymentOutcome.IGNORED

    if notification.booking_id is None:
        record_webhook(PaymentOutcome.UNKNOWN_BOOKING.value)
        log.warning("webhook_missing_booking_id")
        return PaymentOutcome.UNKNOWN_BOOKING

    outcome = await confirm_payment(db, generator, notification.booking_id, source="webhook")
    record_webhook(outcome.value)
    return outcome


async def confirm_payment(
    db: AsyncSession,
    generator: TicketGenerator,
    booking_id: int,
    source: str,
) -> PaymentOutcome:
    """
    Move a booking to paid exactly once and render its ticket.
    Shared by the webhook and the admin manual confirmation.
    """
    store = BookingStore(db)
    log = logger.bind(booking_id=booking_id, source=source)

    booking = await store.get(booking_id)
    if booking is None:
        log.warning("payment_for_unknown_booking")
        return PaymentOutcome.UNKNOWN_BOOKING

    if booking.status == BookingStatus.PENDING.value:
        won = await store.transition(
            booking_id,
            BookingStatus.PENDING,
            BookingStatus.PAID,
            ticket_id=generate_ticket_id(),
            paid_at=datetime.now(timezone.utc),
        )
        await db.commit()
        booking = await store.get(booking_id)
        if won:
            record_transition(BookingStatus.PAID.value)
            log.info("booking_paid", ticket_id=booking.ticket_id, amount=str(booking.amount))
            await issue_ticket(db, generator, booking)
            return PaymentOutcome.PAID

    if booking.status == BookingStatus.PAID.value:
        log.info("payment_already_recorded", ticket_id=booking.ticket_id)
        return PaymentOutcome.DUPLICATE

    log.warning("payment_after_cancellation", status=booking.status)
    return PaymentOutcome.AFTER_CANCEL


async def issue_ticket(db: AsyncSession, generator: TicketGenerator, booking: Booking) -> Optional[str]:
    """
    Render and attach the artifact for a paid booking. Failures are logged
    and leave ticket_pdf_path unset; they never propagate.
    """
    owner = await db.get(User, booking.user_id)
    try:
        path = await generator.generate_artifact(booking, owner)
    except TicketGenerationError as e:
        record_ticket_generation(False)
        logger.error(
            "ticket_generation_failed",
            booking_id=booking.id,
            ticket_id=booking.ticket_id,
            reason=e.reason,
        )
        return None

    record_ticket_generation(True)
    attached = await BookingStore(db).attach_artifact(booking.id, booking.ticket_id, path)
    await db.commit()
    if not attached:
        logger.info("ticket_artifact_already_attached", booking_id=booking.id)
    await db.refresh(booking)
    return path
