from decimal import Decimal

import pytest
from fastapi import HTTPException

from settlement_engine.app.purchases import PurchaseIntake, build_purchase_line, compute_purchase_totals


def _box_line():
    return build_purchase_line(
        item_id="P1", quantity="2", purchase_price="100", gst_percent="18", ps_ratio="12", purchase_unit="box"
    )


def _nos_line():
    return build_purchase_line(item_id="P2", quantity="10", purchase_price="20", gst_percent="12", ps_ratio="1")


def test_build_purchase_line_expands_boxes_to_pieces():
    line = _box_line()
    assert line.purchase_unit == "BOX"
    assert line.quantity_in_numbers == Decimal("24")
    assert line.to_payload()["quantityInNumbers"] == Decimal("24")


def test_build_purchase_line_validates_inputs():
    with pytest.raises(HTTPException) as exc:
        build_purchase_line(item_id="", quantity="1", purchase_price="1", gst_percent="0", ps_ratio="1")
    assert "item_id is required" in str(exc.value.detail)

    with pytest.raises(HTTPException) as exc:
        build_purchase_line(item_id="P1", quantity="0", purchase_price="1", gst_percent="0", ps_ratio="1")
    assert "quantity must be > 0" in str(exc.value.detail)

    with pytest.raises(HTTPException) as exc:
        build_purchase_line(item_id="P1", quantity="1", purchase_price="-5", gst_percent="0", ps_ratio="1")
    assert "purchase price cannot be negative" in str(exc.value.detail)


def test_purchase_totals_add_gst_and_spread_expenses():
    t = compute_purchase_totals([_box_line(), _nos_line()], transport="30", other="12")
    assert t.net_item_total == Decimal("400.00")
    assert t.total_gst_amount == Decimal("60.00")
    assert t.cgst == Decimal("30.00")
    assert t.purchase_total == Decimal("460.00")
    assert t.grand_total == Decimal("502.00")
    # 42 over 34 pieces.
    assert t.per_item_other_expense == Decimal("1.24")


def test_purchase_totals_without_lines_keep_expenses():
    t = compute_purchase_totals([], transport="30")
    assert t.transport_cost == Decimal("30.00")
    assert t.grand_total == Decimal("0")


def test_intake_rejects_duplicates_and_edits_in_place():
    intake = PurchaseIntake()
    intake.add_line(item_id="P1", quantity="2", purchase_price="100", gst_percent="18", ps_ratio="12", purchase_unit="BOX")
    intake.add_line(item_id="P2", quantity="10", purchase_price="20", gst_percent="12", ps_ratio="1", name="Grout")
    assert [l.item_id for l in intake.lines] == ["P2", "P1"]

    with pytest.raises(HTTPException) as exc:
        intake.add_line(item_id="P1", quantity="1", purchase_price="1", gst_percent="0", ps_ratio="1")
    assert "already exists" in str(exc.value.detail)

    intake.edit_line("P1", "quantity", "3")
    p1 = next(l for l in intake.lines if l.item_id == "P1")
    assert p1.quantity_in_numbers == Decimal("36")
    assert intake.totals.net_item_total == Decimal("500.00")

    with pytest.raises(HTTPException):
        intake.edit_line("P2", "quantity", "0")
    assert next(l for l in intake.lines if l.item_id == "P2").quantity == Decimal("10")
    assert next(l for l in intake.lines if l.item_id == "P2").name == "Grout"


def test_intake_expenses_and_payload():
    intake = PurchaseIntake()
    intake.add_line(item_id="P2", quantity="10", purchase_price="20", gst_percent="12", ps_ratio="1")
    intake.set_expenses(transport="15", other="5")
    payload = intake.to_payload()
    assert payload["transportAmount"] == Decimal("15.00")
    assert payload["grandTotal"] == Decimal("244.00")
    assert payload["perItemOtherExpense"] == Decimal("2.00")

    with pytest.raises(HTTPException):
        intake.set_expenses(transport="-1")

    intake.remove_line("P2")
    assert intake.to_payload()["items"] == []
    assert intake.totals.purchase_total == Decimal("0")


def test_intake_rejects_unknown_item_on_remove_and_edit():
    intake = PurchaseIntake()
    intake.add_line(item_id="P2", quantity="10", purchase_price="20", gst_percent="12", ps_ratio="1")
    with pytest.raises(HTTPException) as exc:
        intake.remove_line("P9")
    assert exc.value.status_code == 400
    assert "not on this purchase" in str(exc.value.detail)
    with pytest.raises(HTTPException):
        intake.edit_line("P9", "quantity", "1")
    assert [l.item_id for l in intake.lines] == ["P2"]
