from decimal import Decimal

import pytest
from fastapi import HTTPException

from settlement_engine.app.models import LineItem, Product
from settlement_engine.app.pricing import ProductSelection
from settlement_engine.app.settlement import (
    STATE_EMPTY,
    STATE_POPULATED,
    STATE_SETTLED,
    InvoiceDraft,
    SettlementTotals,
    compute_totals,
)


def _product(item_id, **kw):
    base = {
        "item_id": item_id,
        "name": f"Item {item_id}",
        "category": "TILES",
        "price": "100",
        "countInStock": "50",
        "length": "2",
        "breadth": "3",
        "actLength": "1",
        "actBreadth": "2",
        "psRatio": "0",
    }
    base.update(kw)
    return Product.model_validate(base)


def _nos(item_id, qty, price, gst_percent=None):
    return LineItem.from_product(
        _product(item_id), entered_qty=qty, unit="NOS", selling_price=price, gst_percent=gst_percent
    )


def _two_lines():
    return [_nos("A", "3", "100"), _nos("B", "7", "50")]


def test_totals_extract_mode_worked_example():
    t = compute_totals(_two_lines(), "100", "20", "10", "5")
    assert t.total_amount == Decimal("550.00")
    assert t.discount == Decimal("100.00")
    assert t.per_item_discount == Decimal("10.00")
    assert t.cgst == Decimal("41.95")
    assert t.sgst == Decimal("41.95")
    assert t.gst_amount == Decimal("83.90")
    assert t.amount_without_gst == Decimal("466.10")
    assert t.grand_total == Decimal("668.90")
    assert t.line_discounts == [Decimal("30.00"), Decimal("70.00")]
    assert t.line_totals == [Decimal("270.00"), Decimal("280.00")]


def test_grand_total_adds_tax_and_charges_on_top_of_total():
    t = compute_totals(_two_lines(), "100", "20", "10", "5")
    expected = t.total_amount + t.cgst + t.sgst + t.transportation + t.unloading + t.handling
    assert abs(t.grand_total - expected) <= Decimal("0.01")


def test_totals_for_empty_invoice_are_zero_even_with_discount():
    t = compute_totals([], "100", "20")
    assert t == SettlementTotals()
    assert t.grand_total == Decimal("0")


def test_totals_are_idempotent():
    lines = _two_lines()
    first = compute_totals(lines, "37.5", "12", "0", "3")
    second = compute_totals(lines, "37.5", "12", "0", "3")
    assert first == second


def test_totals_with_gst_disabled():
    t = compute_totals(_two_lines(), "100", "20", "10", "5", gst_mode="disabled")
    assert t.cgst == Decimal("0.00")
    assert t.amount_without_gst == Decimal("550.00")
    assert t.grand_total == Decimal("585.00")


def test_totals_with_gst_added_per_line_rate():
    lines = [_nos("A", "3", "100", gst_percent="18"), _nos("B", "7", "50", gst_percent="12")]
    t = compute_totals(lines, "100", "20", "10", "5", gst_mode="add")
    # (100-10)*18%*3 + (50-10)*12%*7 = 48.6 + 33.6
    assert t.gst_amount == Decimal("82.20")
    assert t.cgst == Decimal("41.10")
    assert t.amount_without_gst == Decimal("550.00")
    assert t.grand_total == Decimal("667.20")


def test_per_line_rounding_policy_rounds_before_summing():
    lines = [_nos("A", "1", "10.005"), _nos("B", "1", "10.005")]
    final = compute_totals(lines, gst_mode="disabled")
    per_line = compute_totals(lines, gst_mode="disabled", rounding_policy="per_line")
    assert final.total_amount == Decimal("20.01")
    assert per_line.total_amount == Decimal("20.02")


def test_totals_reject_negative_charges_and_unknown_modes():
    with pytest.raises(HTTPException) as exc:
        compute_totals(_two_lines(), "-1")
    assert exc.value.status_code == 400
    assert "discount cannot be negative" in str(exc.value.detail)

    with pytest.raises(HTTPException):
        compute_totals(_two_lines(), transportation="abc")

    with pytest.raises(HTTPException) as exc:
        compute_totals(_two_lines(), gst_mode="inclusive")
    assert "unsupported gst mode" in str(exc.value.detail)


def test_draft_lifecycle_and_ordering():
    draft = InvoiceDraft()
    assert draft.state == STATE_EMPTY

    draft.add_line(_product("A"), entered_qty="3", unit="NOS", selling_price="100")
    draft.add_line(_product("B"), entered_qty="7", unit="NOS", selling_price="50")
    assert draft.state == STATE_POPULATED
    # Newest row first.
    assert [l.item_id for l in draft.lines] == ["B", "A"]
    assert draft.totals.total_amount == Decimal("650.00")

    draft.set_discount("100")
    draft.set_charges(transportation="20", unloading="10", handling="5")
    assert draft.totals.grand_total == Decimal("668.90")


def test_draft_rejects_duplicate_product_without_changing_lines():
    draft = InvoiceDraft()
    draft.add_line(_product("A"), entered_qty="3", unit="NOS", selling_price="100")
    with pytest.raises(HTTPException) as exc:
        draft.add_line(_product("A"), entered_qty="1", unit="NOS", selling_price="100")
    assert exc.value.status_code == 400
    assert "already added" in str(exc.value.detail)
    assert len(draft.lines) == 1
    assert draft.lines[0].quantity == Decimal("3")


def test_draft_rejects_area_unit_without_dimensions():
    draft = InvoiceDraft()
    with pytest.raises(HTTPException) as exc:
        draft.add_line(_product("A", length="0"), entered_qty="12", unit="SQFT", selling_price="50")
    assert "length and breadth are required" in str(exc.value.detail)
    assert draft.lines == []
    assert draft.state == STATE_EMPTY


def test_invalid_edit_leaves_line_unchanged():
    draft = InvoiceDraft(gst_mode="disabled")
    draft.add_line(_product("A"), entered_qty="12", unit="SQFT", selling_price="50")
    line = draft.lines[0]
    assert line.quantity == Decimal("2")
    assert line.selling_price_in_qty == Decimal("300")

    with pytest.raises(HTTPException) as exc:
        draft.edit_line("A", "enteredQty", "abc")
    assert "quantity must be a number" in str(exc.value.detail)

    # psRatio is 0 on this product, so BOX cannot be converted.
    with pytest.raises(HTTPException) as exc:
        draft.edit_line("A", "unit", "BOX")
    assert "psRatio is required" in str(exc.value.detail)

    with pytest.raises(HTTPException):
        draft.edit_line("A", "quantity", "5")

    assert line.unit == "SQFT"
    assert line.entered_qty == Decimal("12")
    assert line.quantity == Decimal("2")
    assert line.selling_price_in_qty == Decimal("300")
    assert draft.totals.total_amount == Decimal("600.00")


def test_valid_edit_rederives_quantity_and_totals():
    draft = InvoiceDraft(gst_mode="disabled")
    draft.add_line(_product("A"), entered_qty="12", unit="SQFT", selling_price="50")
    draft.edit_line("A", "enteredQty", "18")
    assert draft.lines[0].quantity == Decimal("3")
    assert draft.totals.total_amount == Decimal("900.00")

    # Unit change re-seeds the default price for the new unit (TILES 100 / 0.8).
    draft.edit_line("A", "unit", "NOS")
    assert draft.lines[0].quantity == Decimal("18")
    assert draft.lines[0].selling_price == Decimal("125.00")
    assert draft.lines[0].selling_price_in_qty == Decimal("125.00")
    assert draft.totals.total_amount == Decimal("2250.00")



def test_unit_change_reseeds_price_from_catalog_cost():
    product = _product("A", actLength="2", actBreadth="1", psRatio="10")
    sel = ProductSelection(product, "SQFT")
    sel.set_quantity("12")
    draft = InvoiceDraft(gst_mode="disabled")
    draft.add_selection(sel)
    line = draft.lines[0]
    assert line.selling_price == Decimal("62.50")
    assert line.quantity == Decimal("2")

    draft.edit_line("A", "unit", "BOX")
    # 125 per piece x 10 pieces per box; 12 boxes are 120 pieces.
    assert line.unit == "BOX"
    assert line.selling_price == Decimal("1250.00")
    assert line.quantity == Decimal("120")
    assert line.selling_price_in_qty == Decimal("7500.00")

    draft.edit_line("A", "sellingPrice", "1100")
    draft.edit_line("A", "unit", "SQFT")
    assert line.selling_price == Decimal("62.50")
    assert line.selling_price_in_qty == Decimal("375.00")


def test_unit_change_on_reopened_invoice_uses_catalog_record():
    record = {
        "products": [
            {"item_id": "A", "category": "TILES", "unit": "SQFT", "enteredQty": "12", "sellingPrice": "50",
             "quantity": "2", "sellingPriceinQty": "300", "length": "2", "breadth": "3"},
            {"item_id": "B", "category": "TILES", "unit": "SQFT", "enteredQty": "6", "sellingPrice": "40",
             "quantity": "1", "sellingPriceinQty": "240", "length": "2", "breadth": "3"},
        ]
    }
    draft = InvoiceDraft.from_record(record, gst_mode="disabled")

    draft.edit_line("A", "unit", "NOS", product=_product("A"))
    assert draft._find("A").selling_price == Decimal("125.00")
    assert draft._find("A").quantity == Decimal("12")

    # Stored rows carry no cost price, so without the catalog record the typed price stays.
    draft.edit_line("B", "unit", "NOS")
    assert draft._find("B").selling_price == Decimal("40")
    assert draft._find("B").quantity == Decimal("6")

def test_removing_last_line_resets_discount():
    draft = InvoiceDraft()
    draft.add_line(_product("A"), entered_qty="3", unit="NOS", selling_price="100")
    draft.set_discount("50")
    draft.remove_line("A")
    assert draft.state == STATE_EMPTY
    assert draft.discount == Decimal("0")
    assert draft.totals.grand_total == Decimal("0")


def test_settled_draft_is_frozen():
    draft = InvoiceDraft()
    draft.add_line(_product("A"), entered_qty="3", unit="NOS", selling_price="100")
    payload = draft.settle()
    assert draft.state == STATE_SETTLED
    assert payload["billingAmount"] == Decimal("300.00")
    assert payload["products"][0]["item_id"] == "A"

    with pytest.raises(HTTPException) as exc:
        draft.add_line(_product("B"), entered_qty="1", unit="NOS", selling_price="10")
    assert "already settled" in str(exc.value.detail)
    with pytest.raises(HTTPException):
        draft.set_discount("10")
    assert len(draft.lines) == 1


def test_settle_requires_a_line():
    with pytest.raises(HTTPException) as exc:
        InvoiceDraft().settle()
    assert "at least one product" in str(exc.value.detail)


def test_add_selection_uses_seeded_price():
    draft = InvoiceDraft(gst_mode="disabled")
    sel = ProductSelection(_product("A"), "SQFT")
    sel.set_quantity("6")
    line = draft.add_selection(sel)
    assert line.quantity == Decimal("1")
    assert line.selling_price_in_qty == Decimal("375.00")
    assert draft.totals.total_amount == Decimal("375.00")


def test_payload_and_print_summary_fields():
    draft = InvoiceDraft()
    draft.add_line(_product("A"), entered_qty="3", unit="NOS", selling_price="100", gst_percent="18")
    draft.set_discount("30")
    payload = draft.to_payload()
    assert set(payload) == {
        "products",
        "discount",
        "unloading",
        "transportation",
        "handlingcharge",
        "billingAmount",
        "grandTotal",
    }
    row = payload["products"][0]
    assert row["sellingPriceinQty"] == Decimal("100")
    assert row["enteredQty"] == Decimal("3")
    assert row["gstPercent"] == Decimal("18")

    summary = draft.print_summary({"invoiceNo": "KK-1"})
    assert summary["perItemDiscount"] == Decimal("10.00")
    assert summary["invoiceNo"] == "KK-1"
    assert summary["subTotal"] + summary["cgst"] + summary["sgst"] == summary["billingAmount"]


def test_from_record_reopens_stored_invoice_without_rederiving():
    record = {
        "invoiceNo": "KK-7",
        "discount": "20",
        "handlingCharge": "5",
        "products": [
            {
                "item_id": "A",
                "name": "Item A",
                "unit": "sqft",
                "enteredQty": "12",
                "sellingPrice": "50",
                "quantity": "2",
                "sellingPriceinQty": "300",
                "length": "2",
                "breadth": "3",
            }
        ],
    }
    draft = InvoiceDraft.from_record(record, gst_mode="disabled")
    assert draft.state == STATE_POPULATED
    assert draft.lines[0].unit == "SQFT"
    assert draft.totals.total_amount == Decimal("580.00")
    assert draft.totals.handling == Decimal("5.00")
    assert draft.totals.grand_total == Decimal("585.00")

    draft.edit_line("A", "enteredQty", "6")
    assert draft.lines[0].quantity == Decimal("1")


def test_from_record_rejects_duplicate_items():
    record = {"products": [{"item_id": "A", "quantity": 1}, {"item_id": "A", "quantity": 2}]}
    with pytest.raises(HTTPException) as exc:
        InvoiceDraft.from_record(record)
    assert "duplicate item" in str(exc.value.detail)
