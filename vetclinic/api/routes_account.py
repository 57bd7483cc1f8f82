# vetclinic/api/routes_account.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from vetclinic.api.deps import current_owner, get_db
from vetclinic.api.routes_invoices import pdf_response
from vetclinic.models.billing import InvoiceStatus
from vetclinic.models.client import Owner
from vetclinic.schemas.billing import AccountInvoiceOut
from vetclinic.services.invoice_service import (
    balance_due,
    get_invoice,
    list_owner_invoices,
    paid_total,
)

router = APIRouter(prefix="/account", tags=["Account"])


def _account_out(db: Session, inv) -> AccountInvoiceOut:
    out = AccountInvoiceOut.model_validate(inv)
    out.paid_total = paid_total(db, inv.id)
    out.balance_due = balance_due(db, inv)
    return out


@router.get("/invoices", response_model=List[AccountInvoiceOut])
def my_invoices(
        db: Session = Depends(get_db),
        owner: Owner = Depends(current_owner),
):
    return [_account_out(db, inv) for inv in list_owner_invoices(db, owner.id)]


def _own_invoice(db: Session, invoice_id: int, owner: Owner):
    inv = get_invoice(db, invoice_id)
    # other owners' invoices and drafts look the same as missing ones
    if inv.owner_id != owner.id or inv.status == InvoiceStatus.DRAFT:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


@router.get("/invoices/{invoice_id}", response_model=AccountInvoiceOut)
def my_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        owner: Owner = Depends(current_owner),
):
    return _account_out(db, _own_invoice(db, invoice_id, owner))


@router.get("/invoices/{invoice_id}/pdf")
def my_invoice_pdf(
        invoice_id: int,
        db: Session = Depends(get_db),
        owner: Owner = Depends(current_owner),
):
    return pdf_response(db, _own_invoice(db, invoice_id, owner))
