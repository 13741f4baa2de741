# Overview: Decimal helpers for ledger amounts (2-place, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value, *, field: str = "amount", exact: bool = False) -> Decimal:
    """
    Coerce int/float/str/Decimal to a 2-place Decimal.

    Floats go through str() so 0.1 stays 0.10 instead of its binary expansion.
    Raises ValueError for booleans, blanks, NaN and infinities. With exact=True
    sub-cent input ("0.005") is refused instead of rounded.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError(f"{field} must be a number")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be a finite number")
    rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if exact and rounded != amount:
        raise ValueError(f"{field} must not have more than 2 decimal places")
    return rounded


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(amount: Decimal | None) -> str:
    """JSON-safe string form ("1250.00")."""
    if amount is None:
        amount = ZERO
    return format(quantize(Decimal(amount)), "f")
