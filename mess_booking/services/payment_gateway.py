"""
Payment gateway boundary.

The booking service only needs one capability from the provider: open a
hosted checkout for a booking. Completion comes back out of band through the
webhook. When no Stripe key is configured the NullGateway is injected and
bookings stay pending until an admin confirms them; that is a supported mode,
not an error.
"""

from dataclasses import dataclass
from decimal import Decimal

import stripe
from starlette.concurrency import run_in_threadpool

from mess_booking.core.config import Settings, get_settings
from mess_booking.core.exceptions import PaymentGatewayError
from mess_booking.core.logging import get_logger
from mess_booking.services.pricing import to_minor_units

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class PaymentGateway:
    configured: bool = False

    async def create_session(
        self, booking_id: int, amount: Decimal, description: str
    ) -> CheckoutSession:
        raise NotImplementedError


class NullGateway(PaymentGateway):
    configured = False

    async def create_session(
        self, booking_id: int, amount: Decimal, description: str
    ) -> CheckoutSession:
        raise PaymentGatewayError("Payment gateway is not configured")


class StripeGateway(PaymentGateway):
    configured = True

    def __init__(self, settings: Settings):
        self._api_key = settings.STRIPE_SECRET_KEY
        self._currency = settings.CURRENCY
        self._client_url = settings.CLIENT_URL.rstrip("/")

    def _create(self, booking_id: int, amount: Decimal, description: str):
        return stripe.checkout.Session.create(
            api_key=self._api_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {"name": description},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{self._client_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self._client_url}/payment-cancel",
            client_reference_id=str(booking_id),
            metadata={"bookingId": str(booking_id)},
        )

    async def create_session(
        self, booking_id: int, amount: Decimal, description: str
    ) -> CheckoutSession:
        try:
            session = await run_in_threadpool(self._create, booking_id, amount, description)
        except stripe.StripeError as e:
            logger.error(
                "checkout_session_failed",
                booking_id=booking_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PaymentGatewayError()

        logger.info("checkout_session_created", booking_id=booking_id, session_id=session.id)
        return CheckoutSession(session_id=session.id, url=session.url)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: Stripe when a secret key is configured, else the null gateway."""
    settings = get_settings()
    if settings.payments_enabled:
        return StripeGateway(settings)
    return NullGateway()
