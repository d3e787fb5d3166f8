"""Decimal helpers for money arithmetic.

Every amount handled by the engine is a ``Decimal``. Floats are converted
through ``str`` so ``0.1`` stays ``Decimal("0.1")``; results shown to users
are rounded to cents with ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

Numeric = Union[int, float, str, Decimal]

ZERO = Decimal("0")
MONEY_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
MONTHS_PER_YEAR = Decimal("12")


def to_decimal(value: Numeric) -> Decimal:
    """Convert a numeric value to Decimal.

    Examples:
        >>> to_decimal(100.50)
        Decimal('100.5')
        >>> to_decimal("100.50")
        Decimal('100.50')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def money(value: Numeric) -> Decimal:
    """Round a value to cents.

    Examples:
        >>> money("100.995")
        Decimal('101.00')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate_percent: Decimal) -> Decimal:
    """Apply a percentage rate (``Decimal("6.2")`` is 6.2%) to an amount."""
    return amount * rate_percent / HUNDRED


def ratio_percent(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole`` as a percentage rounded to 2 places; 0 when whole <= 0."""
    if whole <= 0:
        return ZERO.quantize(RATE_PLACES)
    return (part / whole * HUNDRED).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def parse_amount(value: Optional[Numeric]) -> Optional[Decimal]:
    """Parse user input into a Decimal.

    Blank input parses as zero. Returns None when the input is not a
    finite number, leaving the reporting to the caller.
    """
    if value is None:
        return ZERO
    if isinstance(value, str):
        value = value.strip().replace(",", "").replace("$", "")
        if not value:
            return ZERO
    try:
        parsed = to_decimal(value)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = MONEY_PLACES) -> bool:
    """True when two amounts differ by no more than ``tolerance``."""
    return abs(a - b) <= tolerance
