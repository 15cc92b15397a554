# Overview: Decimal helpers for money and unit-cost values.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
FOURPLACES = Decimal("0.0001")
ZERO = Decimal("0.00")

# Largest amount accepted on any single ledger field
MAX_AMOUNT = Decimal("999999999999.99")


def to_money(value) -> Decimal:
    """
    Coerce a JSON number/string/Decimal into a two-place Decimal.

    None and "" become 0.00. Floats go through str() so 0.1 stays 0.10.
    Raises ValueError for anything that is not a finite number.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return amount.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_unit_cost(value) -> Decimal:
    """Four-place Decimal used for weighted average cost."""
    if value is None or value == "":
        return Decimal("0.0000")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid unit cost: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid unit cost: {value!r}")
    return amount.quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def as_float(value) -> float | None:
    """JSON-friendly rendering of a Decimal column."""
    if value is None:
        return None
    return float(value)
