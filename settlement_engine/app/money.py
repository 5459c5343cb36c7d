from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

MONEY_Q = Decimal("0.01")
ZERO = Decimal("0")


def D(v: Any) -> Decimal:
    """Lenient read of stored/external numbers: blanks, None and junk read as 0."""
    try:
        s = str(v if v is not None else "").strip()
        if not s:
            return ZERO
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return ZERO
    return d if d.is_finite() else ZERO


def parse_decimal(v: Any) -> Optional[Decimal]:
    """Strict read of user input: None when the value is not a finite number."""
    if isinstance(v, bool):
        return None
    try:
        d = Decimal(str(v).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def q2(v: Decimal) -> Decimal:
    return (v or ZERO).quantize(MONEY_Q, rounding=ROUND_HALF_UP)
