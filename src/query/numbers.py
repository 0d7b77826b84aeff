"""Decimal helpers shared by the aggregation engines."""

from decimal import ROUND_HALF_EVEN, Decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def round2(value) -> Decimal:
    """Round to two decimals, ties to even."""
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_EVEN)


def ratio_percent(part, whole, empty: Decimal = ZERO) -> Decimal:
    """part / whole * 100 rounded to two decimals, or `empty` when whole is zero."""
    if not whole:
        return empty
    return round2(Decimal(part) / Decimal(whole) * HUNDRED)


def floor_zero(value):
    """Clamp negatives to zero, keeping the input type."""
    return value if value > 0 else type(value)(0)
