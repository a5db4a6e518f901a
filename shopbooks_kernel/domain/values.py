"""
Values -- Decimal money and quantity helpers.

Responsibility:
    Converts boundary input (str, int, float, Decimal) into ``Decimal`` and
    applies the shop's fixed rounding rules: two places for money, four
    places for per-unit costs, half-up.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Monetary arithmetic is Decimal-only; floats are converted through
      ``str()`` so ``0.1`` becomes ``Decimal("0.1")``, not its binary
      expansion.
    - Rounding is explicit; nothing auto-rounds.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")

MONEY_PLACES = 2
UNIT_COST_PLACES = 4

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)
_UNIT_COST_QUANTUM = Decimal(1).scaleb(-UNIT_COST_PLACES)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a boundary value to Decimal.

    Raises:
        ValueError: If the value is None, a bool, or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return value.quantize(_MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def round_unit_cost(value: Decimal) -> Decimal:
    """Round a per-unit cost to four decimal places, half-up."""
    return value.quantize(_UNIT_COST_QUANTUM, rounding=ROUND_HALF_UP)


def parse_date(value: date | datetime | str) -> date:
    """
    Parse a calendar date from a date, datetime or ISO-8601 string.

    Datetime strings (``2024-03-01T09:30:00Z``) keep only their date part.

    Raises:
        ValueError: If the value is not a date representation.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    raise ValueError(f"Cannot parse date from {value!r}")
