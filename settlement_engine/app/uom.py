from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .errors import safe_div
from .money import D


# Units whose entered quantity is an area and must be divided down to pieces.
AREA_QTY_UNITS = {"SQFT", "GSQFT"}
# Units whose entered price is per sqft and must be scaled up to a per-piece price.
AREA_PRICE_UNITS = {"SQFT", "GSQFT", "BOX", "TNOS"}


@dataclass(frozen=True)
class StockConversion:
    """
    Result of converting what the user typed into stock-tracked terms.

    `converted=False` means a required dimension was missing and the values are
    a pass-through of the input; `reason` says which one.
    """

    qty: Decimal
    price: Decimal
    converted: bool = True
    reason: Optional[str] = None


def area_of(length, breadth) -> Decimal:
    a = D(length) * D(breadth)
    return a if a > 0 else Decimal("0")


def stock_in_unit(count_in_stock, unit: str, *, length, breadth, ps_ratio) -> Decimal:
    """
    Available stock expressed in the unit the user is browsing in.
    Falls back to the raw count when the conversion factor is missing.
    """
    stock = D(count_in_stock)
    if unit == "SQFT":
        area = area_of(length, breadth)
        return stock * area if area else stock
    if unit == "BOX":
        return safe_div(stock, D(ps_ratio), fallback=stock)
    return stock


def convert_entered(entered_qty, entered_price, unit: str, *, length, breadth, ps_ratio) -> StockConversion:
    """
    Canonicalization rules:
    - SQFT/GSQFT: qty = entered / area, price = entered price * area
    - BOX: qty = entered * psRatio, price = entered price * area
    - TNOS: qty unchanged, price = entered price * area
    - NOS (and anything else): both unchanged
    """
    qty = D(entered_qty)
    price = D(entered_price)
    area = area_of(length, breadth)
    ratio = D(ps_ratio)

    if unit in AREA_PRICE_UNITS and not area:
        return StockConversion(qty=qty, price=price, converted=False, reason=f"length and breadth are required for {unit}")
    if unit == "BOX" and ratio <= 0:
        return StockConversion(qty=qty, price=price, converted=False, reason="psRatio is required for BOX")

    if unit in AREA_QTY_UNITS:
        return StockConversion(qty=safe_div(qty, area, fallback=qty), price=price * area)
    if unit == "BOX":
        return StockConversion(qty=qty * ratio, price=price * area)
    if unit == "TNOS":
        return StockConversion(qty=qty, price=price * area)
    return StockConversion(qty=qty, price=price)


def purchase_qty_in_numbers(quantity, purchase_unit: Optional[str], ps_ratio) -> Decimal:
    # Purchase intake counts boxes/packs; stock is kept in pieces.
    qty = D(quantity)
    u = (purchase_unit or "").strip().upper()
    if u in {"BOX", "PACK"}:
        return qty * D(ps_ratio)
    return qty
