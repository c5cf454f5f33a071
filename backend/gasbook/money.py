from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


TWO_PLACES = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """
    Coerce an amount (int, str, Decimal) to a 2-place Decimal.

    Raises ValueError for anything that is not a finite number.
    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError("amount must be a number")
    if not amount.is_finite():
        raise ValueError("amount must be a number")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(value) -> str:
    """
    Serialize an amount as a plain decimal string.

    Whole amounts drop the fraction ("2450"), others keep two places ("500.50").
    """
    amount = to_decimal(value)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount)
