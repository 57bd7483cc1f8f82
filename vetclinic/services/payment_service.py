# vetclinic/services/payment_service.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from vetclinic.models.billing import Invoice, InvoiceStatus, Payment
from vetclinic.models.user import User
from vetclinic.schemas.billing import PaymentIn
from vetclinic.services.billing_math import exceeds_total, money2
from vetclinic.services.invoice_service import paid_total, reconcile_status
from vetclinic.services.tx import commit_or_500, field_error, rollback_on_error

logger = logging.getLogger(__name__)

_NOT_PAYABLE = {
    InvoiceStatus.DRAFT: "has not been issued yet",
    InvoiceStatus.PAID: "is already fully paid",
    InvoiceStatus.VOID: "is void",
}


def _lock_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = (db.query(Invoice).filter(
        Invoice.id == invoice_id).with_for_update().first())
    if not inv:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


def _get_payment(db: Session, payment_id: int) -> Payment:
    pay = db.query(Payment).filter(Payment.id == payment_id).first()
    if not pay:
        raise HTTPException(status_code=404, detail="Payment not found")
    return pay


def _check_amount(inv: Invoice, already_paid: Decimal, amount: Decimal) -> None:
    if amount <= 0:
        raise field_error(422, "Invalid payment",
                          amount="Amount must be greater than zero")
    if exceeds_total(already_paid + amount, inv.total):
        outstanding = money2(inv.total) - already_paid
        if outstanding < 0:
            outstanding = money2(0)
        raise field_error(
            409,
            "Payment exceeds the invoice total",
            amount=f"Amount exceeds the outstanding balance of {outstanding}",
        )


@rollback_on_error
def register_payment(db: Session,
                     invoice_id: int,
                     payload: PaymentIn,
                     *,
                     user: User,
                     today: Optional[date] = None) -> Payment:
    """
    Record a payment against an issued invoice and reconcile its status.

    The invoice row is locked and the paid sum re-read inside the same
    transaction, so concurrent payments cannot overshoot the total.
    """
    inv = _lock_invoice(db, invoice_id)

    reason = _NOT_PAYABLE.get(inv.status)
    if reason:
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} {reason}; payments cannot be registered",
        )

    amount = money2(payload.amount)
    _check_amount(inv, paid_total(db, inv.id), amount)

    pay = Payment(
        invoice_id=inv.id,
        payment_date=payload.payment_date or today or date.today(),
        amount=amount,
        method=payload.method,
        reference=payload.reference,
        notes=payload.notes,
        created_by=user.id,
    )
    db.add(pay)
    db.flush()

    reconcile_status(db, inv, today=today)
    inv.updated_by = user.id

    commit_or_500(db, "registering the payment")
    db.refresh(pay)
    logger.info("Payment %s of %s registered on invoice %s (%s)", pay.id,
                amount, inv.invoice_number, inv.status.value)
    return pay


@rollback_on_error
def update_payment(db: Session,
                   payment_id: int,
                   payload: PaymentIn,
                   *,
                   user: User,
                   today: Optional[date] = None) -> Payment:
    pay = _get_payment(db, payment_id)
    inv = _lock_invoice(db, pay.invoice_id)

    if inv.status in (InvoiceStatus.DRAFT, InvoiceStatus.VOID):
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} is {inv.status.value}; its payments cannot be edited",
        )

    amount = money2(payload.amount)
    others = paid_total(db, inv.id) - money2(pay.amount)
    _check_amount(inv, others, amount)

    pay.amount = amount
    pay.method = payload.method
    if payload.payment_date is not None:
        pay.payment_date = payload.payment_date
    pay.reference = payload.reference
    pay.notes = payload.notes
    db.flush()

    reconcile_status(db, inv, today=today)
    inv.updated_by = user.id

    commit_or_500(db, "updating the payment")
    db.refresh(pay)
    return pay


@rollback_on_error
def delete_payment(db: Session,
                   payment_id: int,
                   *,
                   user: User,
                   today: Optional[date] = None) -> Invoice:
    """Remove a payment; returns the parent invoice after reconciliation."""
    pay = _get_payment(db, payment_id)
    inv = _lock_invoice(db, pay.invoice_id)

    if inv.status == InvoiceStatus.VOID:
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} is void; its payments cannot be deleted",
        )

    db.delete(pay)
    db.flush()

    reconcile_status(db, inv, today=today)
    inv.updated_by = user.id

    commit_or_500(db, "deleting the payment")
    db.refresh(inv)
    logger.info("Payment %s deleted from invoice %s by user %s", payment_id,
                inv.invoice_number, user.id)
    return inv
