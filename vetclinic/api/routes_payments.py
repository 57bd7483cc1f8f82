# vetclinic/api/routes_payments.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from vetclinic.api.deps import get_db, require_staff
from vetclinic.models.user import User
from vetclinic.schemas.billing import PaymentIn, PaymentOut, PaymentResultOut
from vetclinic.services.invoice_service import balance_due, paid_total
from vetclinic.services.payment_service import (
    delete_payment,
    register_payment,
    update_payment,
)

router = APIRouter(tags=["Payments"])


@router.post("/invoices/{invoice_id}/payments",
             response_model=PaymentResultOut,
             status_code=201)
def add_payment(
        invoice_id: int,
        payload: PaymentIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    pay = register_payment(db, invoice_id, payload, user=user)
    inv = pay.invoice
    return PaymentResultOut(
        payment=PaymentOut.model_validate(pay),
        invoice_status=inv.status,
        paid_total=paid_total(db, inv.id),
        balance_due=balance_due(db, inv),
    )


@router.put("/payments/{payment_id}", response_model=PaymentResultOut)
def edit_payment(
        payment_id: int,
        payload: PaymentIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    pay = update_payment(db, payment_id, payload, user=user)
    inv = pay.invoice
    return PaymentResultOut(
        payment=PaymentOut.model_validate(pay),
        invoice_status=inv.status,
        paid_total=paid_total(db, inv.id),
        balance_due=balance_due(db, inv),
    )


@router.delete("/payments/{payment_id}", response_model=PaymentResultOut)
def remove_payment(
        payment_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    inv = delete_payment(db, payment_id, user=user)
    return PaymentResultOut(
        invoice_status=inv.status,
        paid_total=paid_total(db, inv.id),
        balance_due=balance_due(db, inv),
    )
