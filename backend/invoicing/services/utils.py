from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

TWOPLACES = Decimal("0.01")
FOURPLACES = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def d(val) -> Decimal:
    """Coerce incoming values to Decimal safely."""
    if isinstance(val, Decimal):
        return val
    return Decimal(str(val))


def d_or_none(val) -> Optional[Decimal]:
    """Like d(), but maps None/blank/garbage to None instead of raising."""
    if val is None or val == "":
        return None
    try:
        return d(val)
    except (InvalidOperation, ValueError):
        return None


def apply_margin(cost: Decimal, margin_percent: Optional[Decimal]) -> Decimal:
    """cost * (1 + margin/100), with a missing margin treated as 0%."""
    margin = d(margin_percent) if margin_percent is not None else ZERO
    return d(cost) * (ONE + margin / HUNDRED)


def quantize_4(amount: Decimal) -> Decimal:
    return d(amount).quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def format_4(amount: Decimal) -> str:
    """Export representation: always exactly 4 decimal digits."""
    return f"{quantize_4(amount):.4f}"
