"""
Money helpers.

All amounts are stored as integer cents. Conversions to and from decimal
strings go through Decimal so no float ever touches a price.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ONE = Decimal("1")


def parse_cents(value) -> int:
    """
    Convert a decimal amount ("10.50", 10.5, Decimal("10.5"), 10) to cents.

    Raises ValueError for non-numeric input or more than 2 fractional digits.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("must be a decimal amount")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        # repr() of a float is the shortest string that round-trips
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("must be a decimal amount")
        try:
            amount = Decimal(stripped)
        except InvalidOperation:
            raise ValueError("must be a decimal amount")
    else:
        raise ValueError("must be a decimal amount")

    if not amount.is_finite():
        raise ValueError("must be a decimal amount")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        # More digits than the decimal context can hold
        raise ValueError("must be a decimal amount")
    if amount != quantized:
        raise ValueError("must have at most 2 decimal places")

    return int((amount * 100).to_integral_value())


def round_half_up_cents(amount: Decimal) -> int:
    """Round a (possibly fractional) cent amount to whole cents, half away from zero."""
    return int(amount.quantize(ONE, rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


def format_cents(cents: int | None) -> str | None:
    """1234 -> "12.34"."""
    amount = cents_to_decimal(cents)
    return None if amount is None else str(amount)
