from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import List, Optional

from ..errors import PricingValidationError
from ..models import Product
from ..purchases import PurchaseIntake
from ..returns import ReturnDraft
from ..settlement import InvoiceDraft
from ..validation import BillingUnit, GstMode, ReturnType, RoundingPolicy

router = APIRouter(prefix="/settlement", tags=["settlement"])


class PreviewLineIn(Product):
    # Product fields plus what the user entered; derived quantity/price are recomputed server-side.
    entered_qty: Decimal = Field(alias="enteredQty")
    unit: BillingUnit = "NOS"
    selling_price: Decimal = Field(alias="sellingPrice")
    gst_percent: Optional[Decimal] = Field(default=None, alias="gstPercent")


class SettlementPreviewIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    products: List[PreviewLineIn] = []
    discount: Decimal = Decimal("0")
    transportation: Decimal = Decimal("0")
    unloading: Decimal = Decimal("0")
    handlingcharge: Decimal = Decimal("0")
    gst_mode: GstMode = "extract"
    rounding_policy: RoundingPolicy = "final"


class InvoiceRecordIn(BaseModel):
    invoiceNo: Optional[str] = None
    products: List[dict] = []
    discount: Decimal = Decimal("0")


class PurchaseRecordIn(BaseModel):
    purchaseId: Optional[str] = None
    items: List[dict] = []
    discount: Decimal = Decimal("0")


class ReturnQtyIn(BaseModel):
    item_id: str
    quantity: Decimal


class ReturnPreviewIn(BaseModel):
    returnType: ReturnType = "bill"
    invoice: Optional[InvoiceRecordIn] = None
    purchase: Optional[PurchaseRecordIn] = None
    lines: List[ReturnQtyIn] = []
    isGstEnabled: bool = True


class PurchaseLineIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(alias="itemId")
    name: str = ""
    brand: str = ""
    category: str = ""
    purchase_unit: str = Field(default="NOS", alias="purchaseUnit")
    ps_ratio: Decimal = Field(default=Decimal("1"), alias="psRatio")
    quantity: Decimal
    purchase_price: Decimal = Field(alias="purchasePrice")
    gst_percent: Decimal = Field(default=Decimal("0"), alias="gstPercent")


class PurchasePreviewIn(BaseModel):
    items: List[PurchaseLineIn] = []
    transportAmount: Decimal = Decimal("0")
    otherExpense: Decimal = Decimal("0")


@router.post("/preview")
def preview_settlement(data: SettlementPreviewIn):
    draft = InvoiceDraft(gst_mode=data.gst_mode, rounding_policy=data.rounding_policy)
    # Insert oldest-first so the draft ends up in the caller's row order.
    for line in reversed(data.products):
        draft.add_line(
            line,
            entered_qty=line.entered_qty,
            unit=line.unit,
            selling_price=line.selling_price,
            gst_percent=line.gst_percent,
        )
    draft.set_charges(transportation=data.transportation, unloading=data.unloading, handling=data.handlingcharge)
    draft.set_discount(data.discount)
    return {**draft.print_summary(), "gstAmount": draft.totals.gst_amount, "state": draft.state}


@router.post("/returns/preview")
def preview_return(data: ReturnPreviewIn):
    source = data.purchase if data.returnType == "purchase" else data.invoice
    if source is None:
        key = "purchase" if data.returnType == "purchase" else "invoice"
        raise PricingValidationError(f"{key} is required for a {data.returnType} return", field=key)
    draft = ReturnDraft(source.model_dump(), return_type=data.returnType, gst_enabled=data.isGstEnabled)
    for l in data.lines:
        draft.set_quantity(l.item_id, l.quantity)
    return draft.to_payload()


@router.post("/purchases/preview")
def preview_purchase(data: PurchasePreviewIn):
    intake = PurchaseIntake()
    for it in reversed(data.items):
        intake.add_line(
            item_id=it.item_id,
            quantity=it.quantity,
            purchase_price=it.purchase_price,
            gst_percent=it.gst_percent,
            ps_ratio=it.ps_ratio,
            purchase_unit=it.purchase_unit,
            name=it.name,
            brand=it.brand,
            category=it.category,
        )
    intake.set_expenses(transport=data.transportAmount, other=data.otherExpense)
    return intake.to_payload()
