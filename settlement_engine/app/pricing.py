from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from .errors import PricingValidationError, safe_div
from .models import LineItem, Product
from .money import D, q2
from .uom import area_of, stock_in_unit
from .validation import norm_unit, require_positive


# Cost price / divisor = default selling price per stock unit.
MARKUP_DIVISORS = {
    "TILES": Decimal("0.80"),
    "GRANITE": Decimal("0.65"),
}
DEFAULT_MARKUP_DIVISOR = Decimal("0.70")


def markup_divisor(category: Optional[str]) -> Decimal:
    return MARKUP_DIVISORS.get((category or "").strip().upper(), DEFAULT_MARKUP_DIVISOR)


def derive_selling_price(price, category: Optional[str], unit: str, *, act_length, act_breadth, ps_ratio) -> Decimal:
    """
    Default selling price per billing unit:
    - SQFT: base / (actLength * actBreadth)
    - BOX: base * psRatio
    - NOS/TNOS/other: base
    where base = cost price / category markup divisor. Rounded to 2dp since it
    seeds an editable price field.
    """
    base = D(price) / markup_divisor(category)
    if unit == "SQFT":
        return q2(safe_div(base, area_of(act_length, act_breadth), fallback=base))
    if unit == "BOX":
        return q2(base * D(ps_ratio))
    return q2(base)


class ProductSelection:
    """
    The product entry form between "product picked" and "line added".

    The price field is seeded by `derive_selling_price` on selection and re-seeded
    on every unit change; `set_price` records a user override that nothing else
    touches until the unit changes again.
    """

    def __init__(self, product: Product, unit: str = "SQFT", *, allow_out_of_stock: bool = False):
        if not allow_out_of_stock and product.count_in_stock <= 0:
            raise PricingValidationError(f"{product.item_id}: {product.name or 'item'} is out of stock", field="countInStock")
        self.product = product
        self.unit = norm_unit(unit, line_label=product.item_id)
        self.entered_qty: Any = Decimal("1")
        self.selling_price: Decimal = Decimal("0")
        self.price_overridden = False
        self.stock_in_unit: Decimal = Decimal("0")
        self._rederive()

    def _rederive(self) -> None:
        p = self.product
        self.stock_in_unit = stock_in_unit(
            p.count_in_stock, self.unit, length=p.length, breadth=p.breadth, ps_ratio=p.ps_ratio
        )
        self.selling_price = derive_selling_price(
            p.price, p.category, self.unit, act_length=p.act_length, act_breadth=p.act_breadth, ps_ratio=p.ps_ratio
        )
        self.price_overridden = False

    def change_unit(self, unit: str) -> None:
        self.unit = norm_unit(unit, line_label=self.product.item_id)
        self._rederive()

    def set_price(self, value: Any) -> None:
        self.selling_price = require_positive(value, line_label=self.product.item_id, field="selling price")
        self.price_overridden = True

    def set_quantity(self, value: Any) -> None:
        self.entered_qty = require_positive(value, line_label=self.product.item_id, field="quantity")

    def to_line_item(self, *, gst_percent: Any = None) -> LineItem:
        return LineItem.from_product(
            self.product,
            entered_qty=self.entered_qty,
            unit=self.unit,
            selling_price=self.selling_price,
            gst_percent=gst_percent,
        )


def change_line_unit(line: LineItem, unit: Any, *, cost_price: Any = None) -> LineItem:
    """
    Unit change on a billed row. Like ProductSelection.change_unit, the selling
    price is re-seeded for the new unit before quantity and price are re-derived.
    Rows with no known cost price (older stored invoices) keep the typed price.
    """
    new_unit = norm_unit(unit, line_label=line.line_label)
    cost = D(line.price if cost_price is None else cost_price)
    price = line.selling_price
    if cost > 0:
        seeded = derive_selling_price(
            cost,
            line.category,
            new_unit,
            act_length=line.act_length,
            act_breadth=line.act_breadth,
            ps_ratio=line.ps_ratio,
        )
        if seeded > 0:
            price = seeded
    return line.reprice(unit=new_unit, selling_price=price)
