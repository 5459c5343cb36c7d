from decimal import Decimal
from types import SimpleNamespace

from settlement_engine.app.discounts import DiscountAllocation, allocate_discount, per_item_discount
from settlement_engine.app.money import q2


def _line(qty, price):
    return SimpleNamespace(quantity=Decimal(str(qty)), selling_price_in_qty=Decimal(str(price)))


def test_per_item_discount_spreads_over_total_quantity():
    assert per_item_discount([3, 7], 100) == Decimal("10")
    assert per_item_discount(["3", None, "7"], "100") == Decimal("10")


def test_per_item_discount_is_zero_without_quantity():
    assert per_item_discount([], 100) == Decimal("0")
    assert per_item_discount([0, 0], 100) == Decimal("0")


def test_allocate_discount_shares_are_proportional_to_quantity():
    alloc = allocate_discount([_line(3, 100), _line(7, 50)], Decimal("100"))
    assert alloc.per_item_discount == Decimal("10")
    assert alloc.total_quantity == Decimal("10")
    assert alloc.shares == [Decimal("30"), Decimal("70")]
    assert alloc.net_totals == [Decimal("270"), Decimal("280")]
    assert alloc.applied_discount == Decimal("100")


def test_allocate_discount_shares_add_back_up_after_rounding():
    lines = [_line(1, 10), _line(1, 10), _line(1, 10)]
    alloc = allocate_discount(lines, Decimal("100"))
    assert q2(sum(alloc.shares, Decimal("0"))) == Decimal("100.00")
    assert q2(alloc.applied_discount) == Decimal("100.00")


def test_allocate_discount_handles_empty_and_zero_quantity():
    assert allocate_discount([], 50) == DiscountAllocation()

    alloc = allocate_discount([_line(0, 10)], 50)
    assert alloc.per_item_discount == Decimal("0")
    assert alloc.applied_discount == Decimal("0")
    assert alloc.shares == [Decimal("0")]
    assert alloc.net_totals == [Decimal("0")]
