"""Money helpers - two decimal places, half-up"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate) -> Decimal:
    """amount * rate, rounded per item"""
    if not rate:
        return ZERO
    return to_money(Decimal(amount) * Decimal(str(rate)))
