# backend/pharmapos/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")


def D(x) -> Decimal:
    """Exact Decimal from an int, str or Decimal. Floats go through str() so 0.1 stays 0.1."""
    if isinstance(x, Decimal):
        return x
    if x is None:
        return Decimal("0")
    if isinstance(x, bool):
        raise InvalidOperation(f"not a number: {x!r}")
    return Decimal(str(x).strip())


def money2(x) -> Decimal:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount, percent) -> Decimal:
    """amount * percent / 100, rounded to cents."""
    return money2(D(amount) * D(percent) / HUNDRED)


def as_str(x) -> str | None:
    """JSON form of a stored amount: always two fractional digits."""
    if x is None:
        return None
    return str(money2(x))
