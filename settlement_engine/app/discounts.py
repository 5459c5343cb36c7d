from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Sequence

from .errors import safe_div
from .money import D, ZERO


@dataclass(frozen=True)
class DiscountAllocation:
    per_item_discount: Decimal = ZERO
    total_quantity: Decimal = ZERO
    # Discount actually spread over the lines; zero when there is no quantity to carry it.
    applied_discount: Decimal = ZERO
    shares: List[Decimal] = field(default_factory=list)
    net_totals: List[Decimal] = field(default_factory=list)


def per_item_discount(quantities: Iterable, discount) -> Decimal:
    total_qty = sum((D(q) for q in quantities), ZERO)
    return safe_div(D(discount), total_qty)


def allocate_discount(lines: Sequence, discount) -> DiscountAllocation:
    """
    Spread a lump discount evenly per unit of stock quantity.

    Each line carries `per_item * quantity`; shares are left unrounded so they
    add back up to the whole discount. Lines need `quantity` and
    `selling_price_in_qty`.
    """
    if not lines:
        return DiscountAllocation()

    quantities = [D(l.quantity) for l in lines]
    total_qty = sum(quantities, ZERO)
    if total_qty <= 0:
        return DiscountAllocation(
            net_totals=[q * D(l.selling_price_in_qty) for q, l in zip(quantities, lines)],
            shares=[ZERO for _ in lines],
        )

    per_item = D(discount) / total_qty
    shares = [per_item * q for q in quantities]
    net_totals = [q * D(l.selling_price_in_qty) - s for q, l, s in zip(quantities, lines, shares)]
    return DiscountAllocation(
        per_item_discount=per_item,
        total_quantity=total_qty,
        applied_discount=sum(shares, ZERO),
        shares=shares,
        net_totals=net_totals,
    )
