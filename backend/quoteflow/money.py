# Overview: Minor-unit money helpers; amounts are integers end to end and only formatted at display.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import ValidationError

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def format_cents(cents: int | None) -> str | None:
    """1234 -> "12.34". Display only; never feed the result back into arithmetic."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def parse_amount(value, *, field: str = "amount") -> int:
    """
    Parse a decimal major-unit amount ("12.5", 12.5, "12.50") into cents.

    Sub-cent precision is rejected rather than rounded.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    return int(cents)
