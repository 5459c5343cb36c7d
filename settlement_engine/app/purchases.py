from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import PricingValidationError, safe_div
from .logs import json_log
from .money import ZERO, q2
from .tax import NO_TAX, add_gst
from .uom import purchase_qty_in_numbers
from .validation import LenientDecimal, Text, require_non_negative, require_positive


class PurchaseLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: Text = Field(default="", alias="itemId")
    name: Text = ""
    brand: Text = ""
    category: Text = ""
    purchase_unit: Text = Field(default="NOS", alias="purchaseUnit")
    selling_unit: Text = Field(default="", alias="sellingUnit")
    ps_ratio: LenientDecimal = Field(default=Decimal("1"), alias="psRatio")
    quantity: LenientDecimal = Decimal("0")
    quantity_in_numbers: LenientDecimal = Field(default=Decimal("0"), alias="quantityInNumbers")
    purchase_price: LenientDecimal = Field(default=Decimal("0"), alias="purchasePrice")
    gst_percent: LenientDecimal = Field(default=Decimal("0"), alias="gstPercent")

    def to_payload(self) -> dict:
        return {
            "itemId": self.item_id,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "purchaseUnit": self.purchase_unit,
            "sellingUnit": self.selling_unit,
            "psRatio": self.ps_ratio,
            "quantity": self.quantity,
            "quantityInNumbers": self.quantity_in_numbers,
            "purchasePrice": self.purchase_price,
            "gstPercent": self.gst_percent,
        }


def build_purchase_line(
    *,
    item_id: str,
    quantity: Any,
    purchase_price: Any,
    gst_percent: Any,
    ps_ratio: Any,
    purchase_unit: Optional[str] = "NOS",
    **extra,
) -> PurchaseLine:
    label = (item_id or "").strip()
    if not label:
        raise PricingValidationError("purchase line: item_id is required", field="itemId")
    qty = require_positive(quantity, line_label=label, field="quantity")
    ratio = require_positive(ps_ratio, line_label=label, field="psRatio")
    price = require_non_negative(purchase_price, line_label=label, field="purchase price")
    gst = require_non_negative(gst_percent, line_label=label, field="gstPercent")
    unit = (purchase_unit or "NOS").strip().upper()
    return PurchaseLine(
        item_id=label,
        purchase_unit=unit,
        ps_ratio=ratio,
        quantity=qty,
        quantity_in_numbers=purchase_qty_in_numbers(qty, unit, ratio),
        purchase_price=price,
        gst_percent=gst,
        **extra,
    )


@dataclass(frozen=True)
class PurchaseTotals:
    net_item_total: Decimal = ZERO
    total_gst_amount: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    transport_cost: Decimal = ZERO
    other_cost: Decimal = ZERO
    purchase_total: Decimal = ZERO
    grand_total: Decimal = ZERO
    per_item_other_expense: Decimal = ZERO


def compute_purchase_totals(lines: List[PurchaseLine], transport: Any = 0, other: Any = 0) -> PurchaseTotals:
    """
    Purchase bills quote tax-exclusive prices with a GST rate per line, so tax is
    added on top: gst = qty * price * rate / 100. Transport and other expenses are
    spread per stocked piece for landed-cost reporting.
    """
    transport_cost = require_non_negative(transport, line_label="purchase", field="transport")
    other_cost = require_non_negative(other, line_label="purchase", field="other expense")
    if not lines:
        return PurchaseTotals(transport_cost=q2(transport_cost), other_cost=q2(other_cost))

    tax = NO_TAX
    for l in lines:
        tax = tax + add_gst(l.purchase_price, l.gst_percent, l.quantity)
    purchase_total = tax.taxable + tax.gst
    pieces = sum((l.quantity_in_numbers for l in lines), ZERO)
    return PurchaseTotals(
        net_item_total=q2(tax.taxable),
        total_gst_amount=q2(tax.gst),
        cgst=q2(tax.cgst),
        sgst=q2(tax.sgst),
        transport_cost=q2(transport_cost),
        other_cost=q2(other_cost),
        purchase_total=q2(purchase_total),
        grand_total=q2(purchase_total + transport_cost + other_cost),
        per_item_other_expense=q2(safe_div(transport_cost + other_cost, pieces)),
    )


class PurchaseIntake:
    def __init__(self) -> None:
        self.lines: List[PurchaseLine] = []
        self.transport: Decimal = ZERO
        self.other: Decimal = ZERO
        self.totals = PurchaseTotals()

    def recompute(self) -> PurchaseTotals:
        self.totals = compute_purchase_totals(self.lines, self.transport, self.other)
        return self.totals

    def add_line(self, **fields) -> PurchaseLine:
        item_id = str(fields.get("item_id") or "").strip()
        if any(l.item_id == item_id for l in self.lines):
            json_log("info", "pricing.line.rejected", item_id=item_id, reason="duplicate purchase item")
            raise PricingValidationError(f"{item_id}: item already exists; adjust the quantity instead", field="itemId")
        line = build_purchase_line(**fields)
        self.lines.insert(0, line)
        self.recompute()
        return line

    def _find(self, item_id: str) -> PurchaseLine:
        for l in self.lines:
            if l.item_id == item_id:
                return l
        raise PricingValidationError(f"{item_id}: not on this purchase", field="itemId")

    def edit_line(self, item_id: str, field: str, value: Any) -> PurchaseLine:
        line = self._find(item_id)
        current = {
            "quantity": line.quantity,
            "purchasePrice": line.purchase_price,
            "gstPercent": line.gst_percent,
            "psRatio": line.ps_ratio,
            "purchaseUnit": line.purchase_unit,
        }
        if field not in current:
            raise PricingValidationError(f"{item_id}: field {field!r} is not editable", field=field)
        current[field] = value
        rebuilt = build_purchase_line(
            item_id=line.item_id,
            quantity=current["quantity"],
            purchase_price=current["purchasePrice"],
            gst_percent=current["gstPercent"],
            ps_ratio=current["psRatio"],
            purchase_unit=current["purchaseUnit"],
            name=line.name,
            brand=line.brand,
            category=line.category,
            selling_unit=line.selling_unit,
        )
        self.lines[self.lines.index(line)] = rebuilt
        self.recompute()
        return rebuilt

    def remove_line(self, item_id: str) -> None:
        self.lines.remove(self._find(item_id))
        self.recompute()

    def set_expenses(self, *, transport: Any = None, other: Any = None) -> PurchaseTotals:
        if transport is not None:
            self.transport = require_non_negative(transport, line_label="purchase", field="transport")
        if other is not None:
            self.other = require_non_negative(other, line_label="purchase", field="other expense")
        return self.recompute()

    def to_payload(self) -> dict:
        t = self.totals
        return {
            "items": [l.to_payload() for l in self.lines],
            "netItemTotal": t.net_item_total,
            "totalGstAmount": t.total_gst_amount,
            "transportAmount": t.transport_cost,
            "otherExpense": t.other_cost,
            "purchaseTotal": t.purchase_total,
            "grandTotal": t.grand_total,
            "perItemOtherExpense": t.per_item_other_expense,
        }
