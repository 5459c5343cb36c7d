from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from .discounts import per_item_discount
from .errors import PricingValidationError
from .logs import json_log
from .models import line_from_record
from .money import D, ZERO, parse_decimal, q2
from .tax import NO_TAX, add_gst, extract_gst

RETURN_BILL = "bill"
RETURN_PURCHASE = "purchase"


@dataclass
class ReturnLine:
    item_id: str
    name: str
    original_quantity: Decimal
    return_price: Decimal
    quantity: Decimal = ZERO
    # Only purchase returns tax per line.
    gst_percent: Decimal = ZERO


@dataclass(frozen=True)
class ReturnTotals:
    return_amount: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    total_tax: Decimal = ZERO
    net_return_amount: Decimal = ZERO


def return_lines_from_invoice(invoice: dict) -> List[ReturnLine]:
    """
    Price every line of a prior invoice for return: the unit price the customer
    actually paid is sellingPriceinQty less that invoice's per-item discount.
    """
    lines = [line_from_record(p) for p in (invoice.get("products") or [])]
    per_item = per_item_discount([l.quantity for l in lines], invoice.get("discount"))
    return [
        ReturnLine(
            item_id=l.item_id,
            name=l.name,
            original_quantity=D(l.quantity),
            return_price=q2(D(l.selling_price_in_qty) - per_item),
        )
        for l in lines
    ]


def return_lines_from_purchase(purchase: dict) -> List[ReturnLine]:
    """
    Price every item of a prior purchase for return to the seller: purchasePrice
    less the purchase's per-item discount (purchases usually carry none), taxed
    later at the item's own gstPercent.
    """
    items = purchase.get("items") or []
    seen: set[str] = set()
    out: List[ReturnLine] = []
    per_item = per_item_discount([it.get("quantity") for it in items], purchase.get("discount"))
    for it in items:
        item_id = str(it.get("itemId") or it.get("item_id") or "").strip()
        if not item_id:
            raise PricingValidationError("purchase item: itemId is required", field="itemId")
        if item_id in seen:
            raise PricingValidationError(f"{item_id}: duplicate item in purchase record", field="itemId")
        seen.add(item_id)
        out.append(
            ReturnLine(
                item_id=item_id,
                name=str(it.get("name") or ""),
                original_quantity=D(it.get("quantity")),
                return_price=q2(D(it.get("purchasePrice")) - per_item),
                gst_percent=D(it.get("gstPercent")),
            )
        )
    return out


def compute_return_totals(
    lines: List[ReturnLine], *, gst_enabled: bool = True, return_type: str = RETURN_BILL
) -> ReturnTotals:
    """
    returnAmount = sum(returnPrice * qty).

    Bill returns: CGST/SGST are the tax contained in returnAmount (/1.18) and
    netReturnAmount = returnAmount + cgst + sgst, the same composition the
    invoice grand total uses. Purchase returns: prices are tax-exclusive, so each
    line's gstPercent is added on top. GST off: netReturnAmount = returnAmount.
    """
    amount = sum((l.return_price * l.quantity for l in lines), ZERO)
    if not gst_enabled:
        return ReturnTotals(return_amount=q2(amount), net_return_amount=q2(amount))
    if return_type == RETURN_PURCHASE:
        tax = NO_TAX
        for l in lines:
            tax = tax + add_gst(l.return_price, l.gst_percent, l.quantity)
    else:
        tax = extract_gst(amount)
    return ReturnTotals(
        return_amount=q2(amount),
        cgst=q2(tax.cgst),
        sgst=q2(tax.sgst),
        total_tax=q2(tax.gst),
        net_return_amount=q2(amount + tax.cgst + tax.sgst),
    )


class ReturnDraft:
    """A credit note being prepared against one prior invoice or purchase."""

    def __init__(
        self,
        record: dict,
        *,
        return_type: str = RETURN_BILL,
        gst_enabled: bool = True,
        invoice_no: Optional[str] = None,
    ):
        if return_type == RETURN_BILL:
            self.lines = return_lines_from_invoice(record)
            self.invoice_no = invoice_no or record.get("invoiceNo")
        elif return_type == RETURN_PURCHASE:
            self.lines = return_lines_from_purchase(record)
            self.invoice_no = invoice_no or record.get("purchaseId")
        else:
            raise PricingValidationError(f"unsupported return type {return_type!r}", field="returnType")
        self.return_type = return_type
        self.discount = D(record.get("discount"))
        self.gst_enabled = bool(gst_enabled)
        self.totals = self.recompute()

    def _find(self, item_id: str) -> ReturnLine:
        for l in self.lines:
            if l.item_id == item_id:
                return l
        raise PricingValidationError(f"{item_id}: not on the original {self.return_type}", field="item_id")

    def recompute(self) -> ReturnTotals:
        self.totals = compute_return_totals(self.lines, gst_enabled=self.gst_enabled, return_type=self.return_type)
        return self.totals

    def set_quantity(self, item_id: str, value: Any) -> ReturnLine:
        line = self._find(item_id)
        qty = parse_decimal(value) if value not in (None, "") else ZERO
        if qty is None:
            raise PricingValidationError(f"{item_id}: return quantity must be a number", field="quantity")
        if qty < 0:
            raise PricingValidationError(f"{item_id}: return quantity cannot be negative", field="quantity")
        if qty > line.original_quantity:
            verb = "purchased" if self.return_type == RETURN_PURCHASE else "billed"
            json_log(
                "info",
                "returns.rejected",
                return_type=self.return_type,
                item_id=item_id,
                quantity=qty,
                billed=line.original_quantity,
            )
            raise PricingValidationError(
                f"{item_id}: cannot return {qty}, only {line.original_quantity} {verb}", field="quantity"
            )
        line.quantity = qty
        self.recompute()
        return line

    def set_gst_enabled(self, enabled: bool) -> ReturnTotals:
        self.gst_enabled = bool(enabled)
        return self.recompute()

    def to_payload(self) -> dict:
        t = self.totals
        ref_key = "purchaseNo" if self.return_type == RETURN_PURCHASE else "billingNo"
        return {
            "returnType": self.return_type,
            ref_key: self.invoice_no,
            "discount": q2(self.discount),
            "isGstEnabled": self.gst_enabled,
            "products": [
                {"item_id": l.item_id, "name": l.name, "returnPrice": l.return_price, "quantity": l.quantity}
                for l in self.lines
                if l.quantity > 0
            ],
            "returnAmount": t.return_amount,
            "cgst": t.cgst,
            "sgst": t.sgst,
            "totalTax": t.total_tax,
            "netReturnAmount": t.net_return_amount,
        }
