from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .config import settings
from .money import D, ZERO, q2

GST_EXTRACT = "extract"
GST_ADD = "add"
GST_DISABLED = "disabled"

HUNDRED = Decimal("100")
TWO = Decimal("2")


@dataclass(frozen=True)
class TaxBreakdown:
    taxable: Decimal
    gst: Decimal
    cgst: Decimal
    sgst: Decimal

    @property
    def gross(self) -> Decimal:
        return self.taxable + self.gst

    def rounded(self) -> "TaxBreakdown":
        # Halves are rounded first and the taxable part takes the remainder, so the
        # printed figures always add back up to the rounded gross.
        cgst = q2(self.cgst)
        sgst = q2(self.sgst)
        return TaxBreakdown(taxable=q2(self.gross) - cgst - sgst, gst=cgst + sgst, cgst=cgst, sgst=sgst)

    def __add__(self, other: "TaxBreakdown") -> "TaxBreakdown":
        return TaxBreakdown(
            taxable=self.taxable + other.taxable,
            gst=self.gst + other.gst,
            cgst=self.cgst + other.cgst,
            sgst=self.sgst + other.sgst,
        )


NO_TAX = TaxBreakdown(taxable=ZERO, gst=ZERO, cgst=ZERO, sgst=ZERO)


def _split(taxable: Decimal, gst: Decimal) -> TaxBreakdown:
    half = gst / TWO
    return TaxBreakdown(taxable=taxable, gst=gst, cgst=half, sgst=half)


def extract_gst(amount, rate_percent: Optional[Decimal] = None) -> TaxBreakdown:
    """GST contained in a tax-inclusive amount: excl = amount / (1 + rate)."""
    rate = settings.gst_rate_percent if rate_percent is None else D(rate_percent)
    gross = D(amount)
    excl = gross / (1 + rate / HUNDRED)
    return _split(excl, gross - excl)


def add_gst(price, rate_percent, quantity) -> TaxBreakdown:
    """GST on top of a tax-exclusive unit price: (price * rate / 100) * qty."""
    p = D(price)
    q = D(quantity)
    gst = (p * D(rate_percent) / HUNDRED) * q
    return _split(p * q, gst)


def no_gst(amount) -> TaxBreakdown:
    return TaxBreakdown(taxable=D(amount), gst=ZERO, cgst=ZERO, sgst=ZERO)
