# Overview: Fixed-point money helpers shared by sales and catalog code.

"""
Money semantics (authoritative)

- Every amount is a decimal.Decimal with exactly 2 fractional digits.
- Floats never take part in arithmetic; JSON numbers are converted through str().
- Rounding is truncation (ROUND_DOWN) and is applied after every
  multiplication and subtraction, not only on the final figure.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest value a Numeric(10, 2) column can hold
MAX_AMOUNT = Decimal("99999999.99")


def to_money(value: Any) -> Decimal:
    """Coerce to Decimal and truncate to 2 decimals. None becomes 0.00."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError("amount must be a number")
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    else:
        raise ValueError(f"invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(to_money(value))


def line_total(unit_price: Decimal, quantity: int, discount: Decimal | None) -> Decimal:
    """unit_price * quantity - discount, truncated after each step."""
    gross = to_money(to_money(unit_price) * quantity)
    return to_money(gross - to_money(discount))
