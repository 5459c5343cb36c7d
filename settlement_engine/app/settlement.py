from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from .discounts import allocate_discount
from .errors import PricingValidationError
from .logs import json_log
from .models import LineItem, Product, line_from_record
from .money import D, ZERO, q2
from .pricing import ProductSelection, change_line_unit
from .tax import GST_ADD, GST_DISABLED, GST_EXTRACT, TaxBreakdown, add_gst, extract_gst, no_gst
from .validation import require_non_negative

ROUND_FINAL = "final"
ROUND_PER_LINE = "per_line"

STATE_EMPTY = "empty"
STATE_POPULATED = "populated"
STATE_SETTLED = "settled"


@dataclass(frozen=True)
class SettlementTotals:
    total_amount: Decimal = ZERO
    discount: Decimal = ZERO
    per_item_discount: Decimal = ZERO
    amount_without_gst: Decimal = ZERO
    gst_amount: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    transportation: Decimal = ZERO
    unloading: Decimal = ZERO
    handling: Decimal = ZERO
    grand_total: Decimal = ZERO
    line_discounts: List[Decimal] = field(default_factory=list)
    line_totals: List[Decimal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "billingAmount": self.total_amount,
            "discount": self.discount,
            "perItemDiscount": self.per_item_discount,
            "subTotal": self.amount_without_gst,
            "gstAmount": self.gst_amount,
            "cgst": self.cgst,
            "sgst": self.sgst,
            "transportation": self.transportation,
            "unloading": self.unloading,
            "handlingcharge": self.handling,
            "grandTotal": self.grand_total,
        }


def _check_mode(gst_mode: str, rounding_policy: str) -> None:
    if gst_mode not in {GST_EXTRACT, GST_ADD, GST_DISABLED}:
        raise PricingValidationError(f"unsupported gst mode {gst_mode!r}", field="gst_mode")
    if rounding_policy not in {ROUND_FINAL, ROUND_PER_LINE}:
        raise PricingValidationError(f"unsupported rounding policy {rounding_policy!r}", field="rounding_policy")


def compute_totals(
    line_items: Sequence[LineItem],
    discount: Any = 0,
    transportation: Any = 0,
    unloading: Any = 0,
    handling: Any = 0,
    *,
    gst_mode: str = GST_EXTRACT,
    rounding_policy: str = ROUND_FINAL,
) -> SettlementTotals:
    """
    Recompute every invoice total from scratch.

    grandTotal = totalAmount + cgst + sgst + transportation + unloading + handling.
    In extract mode cgst/sgst are taken out of totalAmount and then added on top
    again; amountWithoutGST is informational. Existing invoices were settled this
    way, so the formula is kept as is.

    Accumulation is unrounded; every output is rounded once to 2dp. With
    rounding_policy="per_line" each line's net total (and line GST in add mode)
    is rounded before summing, matching bills printed line by line.
    """
    _check_mode(gst_mode, rounding_policy)
    disc = require_non_negative(discount, line_label="invoice", field="discount")
    transport = require_non_negative(transportation, line_label="invoice", field="transportation")
    unload = require_non_negative(unloading, line_label="invoice", field="unloading")
    handle = require_non_negative(handling, line_label="invoice", field="handling charge")

    if not line_items:
        return SettlementTotals()

    alloc = allocate_discount(line_items, disc)
    per_line = rounding_policy == ROUND_PER_LINE
    net_totals = [q2(t) for t in alloc.net_totals] if per_line else list(alloc.net_totals)
    total = sum(net_totals, ZERO)

    if gst_mode == GST_EXTRACT:
        tax = extract_gst(total)
    elif gst_mode == GST_ADD:
        gst = ZERO
        for line in line_items:
            net_unit = D(line.selling_price_in_qty) - alloc.per_item_discount
            line_gst = add_gst(net_unit, line.gst_percent or 0, line.quantity).gst
            gst += q2(line_gst) if per_line else line_gst
        # Add mode prices are tax-exclusive: the pre-tax figure is the discounted total.
        tax = TaxBreakdown(taxable=total, gst=gst, cgst=gst / 2, sgst=gst / 2)
    else:
        tax = no_gst(total)

    grand = total + tax.cgst + tax.sgst + transport + unload + handle
    if gst_mode == GST_EXTRACT:
        shown = tax.rounded()
    else:
        shown = TaxBreakdown(taxable=q2(tax.taxable), gst=q2(tax.gst), cgst=q2(tax.cgst), sgst=q2(tax.sgst))
    return SettlementTotals(
        total_amount=q2(total),
        discount=q2(alloc.applied_discount),
        per_item_discount=q2(alloc.per_item_discount),
        amount_without_gst=shown.taxable,
        gst_amount=shown.gst,
        cgst=shown.cgst,
        sgst=shown.sgst,
        transportation=q2(transport),
        unloading=q2(unload),
        handling=q2(handle),
        grand_total=q2(grand),
        line_discounts=[q2(s) for s in alloc.shares],
        line_totals=[q2(t) for t in net_totals],
    )


class InvoiceDraft:
    """
    An invoice being edited: EMPTY -> POPULATED -> SETTLED.

    Totals are recomputed after every accepted change. Rejected changes raise
    PricingValidationError before anything is mutated. Once settled, the draft
    is frozen.
    """

    def __init__(self, *, gst_mode: str = GST_EXTRACT, rounding_policy: str = ROUND_FINAL):
        _check_mode(gst_mode, rounding_policy)
        self.gst_mode = gst_mode
        self.rounding_policy = rounding_policy
        self.lines: List[LineItem] = []
        self.discount: Decimal = ZERO
        self.transportation: Decimal = ZERO
        self.unloading: Decimal = ZERO
        self.handling: Decimal = ZERO
        self.state = STATE_EMPTY
        self.totals = SettlementTotals()

    @classmethod
    def from_record(cls, record: dict, **kwargs) -> "InvoiceDraft":
        """Reopen a persisted invoice for editing (billing-edit flow)."""
        draft = cls(**kwargs)
        lines = [line_from_record(p) for p in (record.get("products") or [])]
        seen: set[str] = set()
        for l in lines:
            if l.item_id in seen:
                raise PricingValidationError(f"{l.item_id}: duplicate item in invoice record", field="item_id")
            seen.add(l.item_id)
        draft.lines = lines
        draft.discount = require_non_negative(record.get("discount"), line_label="invoice", field="discount")
        draft.transportation = require_non_negative(record.get("transportation"), line_label="invoice", field="transportation")
        draft.unloading = require_non_negative(record.get("unloading"), line_label="invoice", field="unloading")
        draft.handling = require_non_negative(
            record.get("handlingcharge", record.get("handlingCharge")), line_label="invoice", field="handling charge"
        )
        draft.recompute()
        return draft

    def _assert_open(self) -> None:
        if self.state == STATE_SETTLED:
            raise PricingValidationError("invoice is already settled")

    def _find(self, item_id: str) -> LineItem:
        for l in self.lines:
            if l.item_id == item_id:
                return l
        raise PricingValidationError(f"{item_id}: not on this invoice", field="item_id")

    def recompute(self) -> SettlementTotals:
        self.totals = compute_totals(
            self.lines,
            self.discount,
            self.transportation,
            self.unloading,
            self.handling,
            gst_mode=self.gst_mode,
            rounding_policy=self.rounding_policy,
        )
        if not self.lines:
            self.discount = ZERO
        if self.state != STATE_SETTLED:
            self.state = STATE_POPULATED if self.lines else STATE_EMPTY
        return self.totals

    def add_line(self, product: Product, *, entered_qty: Any, unit: Any, selling_price: Any, gst_percent: Any = None) -> LineItem:
        self._assert_open()
        if any(l.item_id == product.item_id for l in self.lines):
            json_log("info", "pricing.line.rejected", item_id=product.item_id, reason="duplicate")
            raise PricingValidationError(
                f"{product.item_id}: product is already added; adjust the quantity instead", field="item_id"
            )
        try:
            line = LineItem.from_product(
                product, entered_qty=entered_qty, unit=unit, selling_price=selling_price, gst_percent=gst_percent
            )
        except PricingValidationError as exc:
            json_log("info", "pricing.line.rejected", item_id=product.item_id, reason=exc.detail)
            raise
        # Newest rows go on top, as the billing table shows them.
        self.lines.insert(0, line)
        self.recompute()
        json_log("info", "pricing.line.added", item_id=line.item_id, unit=line.unit, quantity=line.quantity)
        return line

    def add_selection(self, selection: ProductSelection, *, gst_percent: Any = None) -> LineItem:
        return self.add_line(
            selection.product,
            entered_qty=selection.entered_qty,
            unit=selection.unit,
            selling_price=selection.selling_price,
            gst_percent=gst_percent,
        )

    def edit_line(self, item_id: str, field: str, value: Any, *, product: Optional[Product] = None) -> LineItem:
        """
        Inline table edit. `product` is the current catalog record; it supplies
        the cost price for a unit change on rows reopened from a stored invoice.
        """
        self._assert_open()
        line = self._find(item_id)
        try:
            if field == "unit":
                change_line_unit(line, value, cost_price=product.price if product is not None else None)
            else:
                line.apply_edit(field, value)
        except PricingValidationError as exc:
            json_log("info", "pricing.line.rejected", item_id=item_id, field=field, reason=exc.detail)
            raise
        self.recompute()
        return line

    def remove_line(self, item_id: str) -> None:
        self._assert_open()
        line = self._find(item_id)
        self.lines.remove(line)
        self.recompute()

    def set_discount(self, value: Any) -> SettlementTotals:
        self._assert_open()
        self.discount = require_non_negative(value, line_label="invoice", field="discount")
        return self.recompute()

    def set_charges(self, *, transportation: Any = None, unloading: Any = None, handling: Any = None) -> SettlementTotals:
        self._assert_open()
        t = self.transportation if transportation is None else require_non_negative(transportation, line_label="invoice", field="transportation")
        u = self.unloading if unloading is None else require_non_negative(unloading, line_label="invoice", field="unloading")
        h = self.handling if handling is None else require_non_negative(handling, line_label="invoice", field="handling charge")
        self.transportation, self.unloading, self.handling = t, u, h
        return self.recompute()

    def settle(self) -> dict:
        """Final recompute before submission; the draft is frozen afterwards."""
        self._assert_open()
        if not self.lines:
            raise PricingValidationError("add at least one product before submitting")
        self.recompute()
        self.state = STATE_SETTLED
        payload = self.to_payload()
        json_log(
            "info",
            "settlement.settled",
            lines=len(self.lines),
            billing_amount=payload["billingAmount"],
            grand_total=payload["grandTotal"],
        )
        return payload

    def to_payload(self) -> dict:
        t = self.totals
        return {
            "products": [l.to_payload() for l in self.lines],
            "discount": q2(self.discount),
            "unloading": t.unloading,
            "transportation": t.transportation,
            "handlingcharge": t.handling,
            "billingAmount": t.total_amount,
            "grandTotal": t.grand_total,
        }

    def print_summary(self, extra: Optional[dict] = None) -> dict:
        # Fields the invoice print/PDF templates read in addition to the persisted payload.
        t = self.totals
        out = self.to_payload()
        out.update(
            {
                "perItemDiscount": t.per_item_discount,
                "subTotal": t.amount_without_gst,
                "cgst": t.cgst,
                "sgst": t.sgst,
                "handling": t.handling,
            }
        )
        if extra:
            out.update(extra)
        return out
