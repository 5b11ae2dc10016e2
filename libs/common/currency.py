"""Money helpers for club finances.

Storage and API unit: dollars as ``Decimal`` with two places
(``Numeric(12, 2)`` columns). Floats never touch budget arithmetic.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, float, str]


def to_money(value: Optional[Amount]) -> Decimal:
    """Coerce a value to a cent-quantised Decimal (round half-up). None → 0."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() first so floats keep their printed value rather than binary noise
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Optional[Amount]]) -> Decimal:
    """Sum amounts, ignoring None."""
    total = ZERO
    for value in values:
        if value is not None:
            total += to_money(value)
    return total


def format_usd(value: Amount) -> str:
    """Render an amount for error messages, e.g. ``$1,234.50``."""
    amount = to_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
