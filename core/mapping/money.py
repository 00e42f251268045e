"""Monetary rounding and formatting.

All amounts leaving the adapter layer have exactly two decimals, use a dot
as decimal separator and never carry thousands separators.
"""

from decimal import Decimal, ROUND_HALF_UP

from core.models.canonical import _parse_decimal

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, default: Decimal = Decimal("0")) -> Decimal:
    """Parse loosely formatted numbers, returning ``default`` for blanks."""
    parsed = _parse_decimal(value)
    return default if parsed is None else parsed


def to_money(value) -> Decimal:
    """Round to two decimals, half up (99.999 -> 100.00)."""
    amount = to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if amount == 0:
        return ZERO
    return amount


def format_money(value) -> str:
    """Format an amount as a plain two-decimal string ("100.00")."""
    return format(to_money(value), "f")


def format_rate(value) -> str:
    """Format a VAT rate without trailing zeros ("20", "8", "0.5")."""
    rate = to_decimal(value)
    if rate == rate.to_integral_value():
        return str(int(rate))
    return format(rate.normalize(), "f")


def money_float(value) -> float:
    """Two-decimal float for JSON APIs that reject string amounts."""
    return float(to_money(value))
