"""
Price catalog: unit price per meal type and booking totals.
"""

from decimal import Decimal, ROUND_HALF_UP

from mess_booking.core.config import get_settings
from mess_booking.core.exceptions import ValidationError
from mess_booking.models.booking import MealType

CENTS = Decimal("0.01")


def unit_price(meal_type: str) -> Decimal:
    try:
        meal = MealType(meal_type)
    except ValueError:
        raise ValidationError(
            f"Unknown meal type '{meal_type}'. Must be one of: "
            + ", ".join(m.value for m in MealType)
        )

    prices = get_settings().MEAL_PRICES
    if meal.value not in prices:
        raise ValidationError(f"No price configured for meal type '{meal.value}'")
    return Decimal(prices[meal.value]).quantize(CENTS, rounding=ROUND_HALF_UP)


def total(meal_type: str, persons: int) -> Decimal:
    return (unit_price(meal_type) * persons).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Amount in the currency's smallest unit (paise, cents) for the gateway."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
