from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce to Decimal rounded half-up to 2 places (floats go through str)."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str | None:
    """Serialize money for JSON as a fixed 2-decimal string."""
    if value is None:
        return None
    return str(to_money(value))
