# vetclinic/api/routes_invoices.py
from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from vetclinic.api.deps import get_db, require_staff
from vetclinic.api.response import ok
from vetclinic.core.config import settings
from vetclinic.models.billing import Invoice, InvoiceStatus
from vetclinic.models.user import User
from vetclinic.schemas.billing import (
    InvoiceCreatedOut,
    InvoiceIn,
    InvoiceListOut,
    InvoiceOut,
)
from vetclinic.services import invoice_service as svc
from vetclinic.services.invoice_pdf import build_invoice_pdf

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def invoice_out(db: Session, inv: Invoice) -> InvoiceOut:
    out = InvoiceOut.model_validate(inv)
    out.paid_total = svc.paid_total(db, inv.id)
    out.balance_due = svc.balance_due(db, inv)
    return out


@router.get("", response_model=List[InvoiceListOut])
def list_invoices(
        status: Optional[InvoiceStatus] = Query(None),
        owner_id: Optional[int] = Query(None),
        patient_id: Optional[int] = Query(None),
        q: Optional[str] = Query(None, description="Invoice number or owner name"),
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return svc.list_invoices(
        db,
        status=status,
        owner_id=owner_id,
        patient_id=patient_id,
        q=q,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=InvoiceCreatedOut, status_code=201)
def create_invoice(
        payload: InvoiceIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv, warnings = svc.create_invoice(db, payload, user=user)
    return InvoiceCreatedOut(invoice=invoice_out(db, svc.get_invoice(db, inv.id)),
                             warnings=warnings)


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return invoice_out(db, svc.get_invoice(db, invoice_id))


@router.put("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
        invoice_id: int,
        payload: InvoiceIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv = svc.update_invoice(db, invoice_id, payload, user=user)
    return invoice_out(db, inv)


@router.delete("/{invoice_id}")
def delete_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    number = svc.delete_invoice(db, invoice_id, user=user)
    return ok({"id": invoice_id, "invoice_number": number, "deleted": True})


@router.post("/{invoice_id}/issue", response_model=InvoiceOut)
def issue_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv = svc.issue_invoice(db, invoice_id, user=user)
    return invoice_out(db, inv)


@router.post("/{invoice_id}/void")
def void_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv, changed = svc.void_invoice(db, invoice_id, user=user)
    return ok({
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "status": inv.status.value,
        "changed": changed,
    })


@router.post("/{invoice_id}/reconcile")
def reconcile_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv, changed = svc.reconcile_invoice(db, invoice_id, user=user)
    return ok({
        "id": inv.id,
        "status": inv.status.value,
        "changed": changed,
        "paid_total": svc.paid_total(db, inv.id),
        "balance_due": svc.balance_due(db, inv),
    })


def pdf_response(db: Session, inv: Invoice) -> StreamingResponse:
    pdf_bytes = build_invoice_pdf(
        inv,
        paid=svc.paid_total(db, inv.id),
        balance=svc.balance_due(db, inv),
        clinic_name=settings.CLINIC_NAME,
    )
    filename = f"{inv.invoice_number}.pdf"
    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(
        invoice_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return pdf_response(db, svc.get_invoice(db, invoice_id))
