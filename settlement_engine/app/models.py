from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import PricingValidationError
from .money import D
from .uom import convert_entered
from .validation import Category, LenientDecimal, Text, norm_unit, require_non_negative, require_positive


class Product(BaseModel):
    """Catalog record as returned by the product lookup service (read-only)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: Text
    name: Text = ""
    category: Category = ""
    brand: Text = ""
    price: LenientDecimal = Decimal("0")
    count_in_stock: LenientDecimal = Field(default=Decimal("0"), alias="countInStock")
    length: LenientDecimal = Decimal("0")
    breadth: LenientDecimal = Decimal("0")
    act_length: LenientDecimal = Field(default=Decimal("0"), alias="actLength")
    act_breadth: LenientDecimal = Field(default=Decimal("0"), alias="actBreadth")
    size: Text = ""
    ps_ratio: LenientDecimal = Field(default=Decimal("0"), alias="psRatio")
    stock_unit: Optional[str] = Field(default=None, alias="sUnit")


class LineItem(BaseModel):
    """
    One billed row. `quantity` / `selling_price_in_qty` are always derived from
    `entered_qty` / `selling_price` / `unit` in one step; nothing else writes them.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: Text = ""
    name: Text = ""
    category: Category = ""
    brand: Text = ""
    # Catalog cost price; seeds the default selling price when the unit changes.
    price: LenientDecimal = Decimal("0")
    length: LenientDecimal = Decimal("0")
    breadth: LenientDecimal = Decimal("0")
    act_length: LenientDecimal = Field(default=Decimal("0"), alias="actLength")
    act_breadth: LenientDecimal = Field(default=Decimal("0"), alias="actBreadth")
    size: Text = ""
    ps_ratio: LenientDecimal = Field(default=Decimal("0"), alias="psRatio")

    entered_qty: LenientDecimal = Field(default=Decimal("0"), alias="enteredQty")
    unit: Text = "NOS"
    selling_price: LenientDecimal = Field(default=Decimal("0"), alias="sellingPrice")
    quantity: LenientDecimal = Decimal("0")
    selling_price_in_qty: LenientDecimal = Field(default=Decimal("0"), alias="sellingPriceinQty")
    gst_percent: Optional[LenientDecimal] = Field(default=None, alias="gstPercent")

    @classmethod
    def from_product(
        cls,
        product: Product,
        *,
        entered_qty: Any,
        unit: Any,
        selling_price: Any,
        gst_percent: Any = None,
    ) -> "LineItem":
        label = product.item_id or "line"
        line = cls(
            item_id=product.item_id,
            name=product.name,
            category=product.category,
            brand=product.brand,
            price=product.price,
            length=product.length,
            breadth=product.breadth,
            act_length=product.act_length,
            act_breadth=product.act_breadth,
            size=product.size,
            ps_ratio=product.ps_ratio,
        )
        if gst_percent is not None:
            line.gst_percent = require_non_negative(gst_percent, line_label=label, field="gstPercent")
        line.reprice(entered_qty=entered_qty, unit=unit, selling_price=selling_price)
        return line

    @property
    def line_label(self) -> str:
        return self.item_id or "line"

    def reprice(self, *, entered_qty: Any = None, unit: Any = None, selling_price: Any = None) -> "LineItem":
        """
        Apply a change to any of enteredQty / sellingPrice / unit and re-derive the
        stock-unit pair. Validation happens before assignment: a rejected change
        leaves the row exactly as it was.
        """
        label = self.line_label
        qty_in = self.entered_qty if entered_qty is None else entered_qty
        price_in = self.selling_price if selling_price is None else selling_price
        unit_in = self.unit if unit is None else unit

        new_unit = norm_unit(unit_in, line_label=label)
        new_qty = require_positive(qty_in, line_label=label, field="quantity")
        new_price = require_positive(price_in, line_label=label, field="selling price")

        conv = convert_entered(
            new_qty,
            new_price,
            new_unit,
            length=self.length,
            breadth=self.breadth,
            ps_ratio=self.ps_ratio,
        )
        if not conv.converted:
            raise PricingValidationError(f"{label}: {conv.reason}", field="unit")
        if conv.qty <= 0 or conv.price <= 0:
            raise PricingValidationError(f"{label}: converted quantity and price must be > 0", field="quantity")

        self.entered_qty = new_qty
        self.selling_price = new_price
        self.unit = new_unit
        self.quantity = conv.qty
        self.selling_price_in_qty = conv.price
        return self

    def apply_edit(self, field: str, value: Any) -> "LineItem":
        # Field names as the table cells send them. Unit changes also re-seed the
        # price, see pricing.change_line_unit.
        if field == "enteredQty":
            return self.reprice(entered_qty=value)
        if field == "sellingPrice":
            return self.reprice(selling_price=value)
        raise PricingValidationError(f"{self.line_label}: field {field!r} is not editable", field=field)

    def gross_total(self) -> Decimal:
        return self.quantity * self.selling_price_in_qty

    def to_payload(self) -> dict:
        out = {
            "item_id": self.item_id,
            "name": self.name,
            "category": self.category,
            "brand": self.brand,
            "quantity": self.quantity,
            "sellingPrice": self.selling_price,
            "enteredQty": self.entered_qty,
            "sellingPriceinQty": self.selling_price_in_qty,
            "unit": self.unit,
            "length": self.length or 0,
            "breadth": self.breadth or 0,
            "size": self.size or 0,
            "psRatio": self.ps_ratio or 0,
        }
        if self.gst_percent is not None:
            out["gstPercent"] = self.gst_percent
        return out


def line_from_record(rec: dict) -> LineItem:
    """
    Rebuild a persisted invoice row without re-deriving it: stored quantity and
    sellingPriceinQty are what the customer was billed.
    """
    line = LineItem.model_validate(rec)
    if not line.item_id:
        raise PricingValidationError("invoice line: item_id is required", field="item_id")
    if not line.unit:
        line.unit = "NOS"
    line.unit = line.unit.upper()
    # Older records may lack the derived pair; fall back to the entered values.
    if not line.quantity and line.entered_qty:
        line.quantity = D(line.entered_qty)
    if not line.selling_price_in_qty and line.selling_price:
        line.selling_price_in_qty = D(line.selling_price)
    return line
