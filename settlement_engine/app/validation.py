from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import BeforeValidator

from .errors import PricingValidationError
from .money import D, ZERO, parse_decimal


def _to_upper_str(v):
    if v is None:
        return v
    return str(v).strip().upper()


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _to_str_or_empty(v):
    if v is None:
        return ""
    return str(v).strip()


BILLING_UNITS = ("SQFT", "GSQFT", "BOX", "NOS", "TNOS")

BillingUnit = Annotated[Literal["SQFT", "GSQFT", "BOX", "NOS", "TNOS"], BeforeValidator(_to_upper_str)]
GstMode = Annotated[Literal["extract", "add", "disabled"], BeforeValidator(_to_lower_str)]
RoundingPolicy = Annotated[Literal["final", "per_line"], BeforeValidator(_to_lower_str)]
ReturnType = Annotated[Literal["bill", "purchase"], BeforeValidator(_to_lower_str)]

# Product records come from an external catalog where blanks and nulls are common.
LenientDecimal = Annotated[Decimal, BeforeValidator(D)]
Text = Annotated[str, BeforeValidator(_to_str_or_empty)]
Category = Annotated[str, BeforeValidator(lambda v: _to_upper_str(v) or "")]


def norm_unit(v: Optional[str], *, line_label: str = "line") -> str:
    u = _to_upper_str(v) or ""
    if u not in BILLING_UNITS:
        raise PricingValidationError(f"{line_label}: unsupported unit {v!r}", field="unit")
    return u


def require_positive(v: Any, *, line_label: str, field: str) -> Decimal:
    d = parse_decimal(v)
    if d is None:
        raise PricingValidationError(f"{line_label}: {field} must be a number", field=field)
    if d <= 0:
        raise PricingValidationError(f"{line_label}: {field} must be > 0", field=field)
    return d


def require_non_negative(v: Any, *, line_label: str, field: str) -> Decimal:
    # Blank charge fields mean "no charge".
    if v is None or (isinstance(v, str) and not v.strip()):
        return ZERO
    d = parse_decimal(v)
    if d is None:
        raise PricingValidationError(f"{line_label}: {field} must be a number", field=field)
    if d < 0:
        raise PricingValidationError(f"{line_label}: {field} cannot be negative", field=field)
    return d
