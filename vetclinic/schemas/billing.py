# vetclinic/schemas/billing.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from vetclinic.core.config import settings
from vetclinic.models.billing import InvoiceStatus, InvoiceOrigin, PaymentMethod


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


def check_tax_rate(v: Decimal) -> Decimal:
    if v not in settings.TAX_RATES:
        allowed = ", ".join(str(r) for r in settings.TAX_RATES)
        raise ValueError(f"Tax rate must be one of: {allowed}")
    return v


# ---------------- Input ----------------
class InvoiceLineIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = Field(..., min_length=1, max_length=300)
    quantity: Decimal = Field(..., gt=0, decimal_places=2)
    unit_price: Decimal = Field(..., ge=0, decimal_places=2)
    tax_rate: Decimal = Decimal("0")

    procedure_id: Optional[int] = None
    product_id: Optional[int] = None

    @field_validator("tax_rate")
    @classmethod
    def tax_rate_allowed(cls, v: Decimal) -> Decimal:
        return check_tax_rate(v)

    @model_validator(mode="after")
    def one_source_only(self) -> "InvoiceLineIn":
        if self.procedure_id is not None and self.product_id is not None:
            raise ValueError("A line can reference a procedure or a product, not both")
        return self


class InvoiceIn(BaseModel):
    """Create / full-replace payload of an invoice (header + lines)."""
    model_config = ConfigDict(extra="ignore")

    owner_id: int
    patient_id: Optional[int] = None

    # empty -> allocated from the origin's series
    invoice_number: Optional[str] = Field(None, max_length=32)
    origin: Optional[InvoiceOrigin] = None
    clinical_record_id: Optional[int] = None

    issue_date: Optional[date] = None
    due_date: Optional[date] = None

    client_notes: Optional[str] = None
    internal_notes: Optional[str] = None

    items: List[InvoiceLineIn] = Field(..., min_length=1)

    @field_validator("invoice_number", "client_notes", "internal_notes", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def due_after_issue(self) -> "InvoiceIn":
        # without issue_date the stored or default one is checked by the service
        if (self.issue_date is not None and self.due_date is not None
                and self.due_date < self.issue_date):
            raise ValueError("due_date must be on or after issue_date")
        return self


class PaymentIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment_date: Optional[date] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("reference", "notes", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return _blank_to_none(v)


# ---------------- Output ----------------
class InvoiceItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seq: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    procedure_id: Optional[int] = None
    product_id: Optional[int] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    payment_date: date
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class InvoiceListOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    origin: InvoiceOrigin
    owner_id: int
    patient_id: Optional[int] = None
    issue_date: date
    due_date: Optional[date] = None
    status: InvoiceStatus
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class InvoiceOut(InvoiceListOut):
    tax_breakdown: Optional[Dict[str, Any]] = None
    client_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    issued_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    items: List[InvoiceItemOut] = []
    payments: List[PaymentOut] = []

    paid_total: Decimal = Decimal("0.00")
    balance_due: Decimal = Decimal("0.00")


class AccountInvoiceOut(InvoiceListOut):
    """Owner-facing view: no internal notes."""
    client_notes: Optional[str] = None
    items: List[InvoiceItemOut] = []
    paid_total: Decimal = Decimal("0.00")
    balance_due: Decimal = Decimal("0.00")


class InvoiceCreatedOut(BaseModel):
    invoice: InvoiceOut
    warnings: List[str] = []


class PaymentResultOut(BaseModel):
    payment: Optional[PaymentOut] = None
    invoice_status: InvoiceStatus
    paid_total: Decimal
    balance_due: Decimal
