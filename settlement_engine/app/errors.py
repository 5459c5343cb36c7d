from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import HTTPException


class PricingValidationError(HTTPException):
    """
    A rejected user action: bad quantity/price, missing dimensions, duplicate
    line, over-quota return. Raised before any draft state is touched, so the
    caller can surface `detail` and keep editing.
    """

    def __init__(self, detail: str, *, field: Optional[str] = None):
        super().__init__(status_code=400, detail=detail)
        self.field = field


def safe_div(num: Decimal, den: Decimal, fallback: Decimal = Decimal("0")) -> Decimal:
    # Zero or missing divisors (area, psRatio, total qty) never reach the totals as inf/NaN.
    if not den:
        return fallback
    return num / den
