"""
Currency helpers.

Amounts are Decimal end to end; rounding to cents happens once, when a
commission is persisted.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and floats (via str) to Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_currency(amount) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount) -> str:
    """$1,234.50"""
    return f"${round_currency(amount):,.2f}"


def format_rate(rate) -> str:
    """Percentage without trailing zeros: 10.0000 -> 10, 2.50 -> 2.5"""
    return format(to_decimal(rate).normalize(), "f")
