"""
Money helpers.

Amounts are carried as ``Decimal`` through extraction and aggregation and
only turned into floats for JSON output. Rounding is to cents, half up.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Numeric coercion: null, blank or non-numeric values count as zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def to_quantity(value) -> int:
    return int(to_decimal(value))


def money(value) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_float(value) -> float:
    """Cents-rounded float for JSON output."""
    return float(money(value))


def percent(part, whole) -> float:
    whole = to_decimal(whole)
    if whole == 0:
        return 0.0
    return float((to_decimal(part) * 100 / whole).quantize(CENTS, rounding=ROUND_HALF_UP))
