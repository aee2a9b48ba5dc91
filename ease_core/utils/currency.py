"""Currency arithmetic and formatting utilities."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal | None:
    """
    Convert a JSON number or numeric string into a Decimal.

    Booleans and values that cannot be parsed return None. Floats go through
    ``str`` so that ``50.1`` becomes ``Decimal("50.1")`` rather than its binary
    expansion.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def add_rounded(total: Decimal, amount: Decimal) -> Decimal:
    """
    Add ``amount`` to ``total`` and round the sum to two decimal places.

    Rounding is decimal half-up on the exact sum, not on a binary float, so
    ``1 + 0.005`` gives ``1.01``.
    """
    return round_cents(total + amount)


def format_amount(amount: Decimal, symbol: str = "R$") -> str:
    """
    Format an amount with a currency symbol.

    Args:
        amount: Amount in currency units (e.g., Decimal("1999.5"))
        symbol: Currency symbol prefix

    Returns:
        Formatted string (e.g., "R$ 1,999.50")
    """
    return f"{symbol} {round_cents(amount):,.2f}"
