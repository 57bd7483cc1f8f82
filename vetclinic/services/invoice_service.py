# vetclinic/services/invoice_service.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from vetclinic.models.billing import (
    Invoice,
    InvoiceItem,
    InvoiceOrigin,
    InvoiceStatus,
    Payment,
)
from vetclinic.models.client import Owner, Patient
from vetclinic.models.clinical import ClinicalRecord, Procedure
from vetclinic.models.error_log import PARTIAL_FAILURE
from vetclinic.models.inventory import Product
from vetclinic.models.user import User
from vetclinic.schemas.billing import InvoiceIn
from vetclinic.services.billing_math import (
    D,
    compute_totals,
    money2,
    money_eq_or_above,
)
from vetclinic.services.error_logger import log_error
from vetclinic.services.invoice_numbers import (
    invoice_number_taken,
    next_invoice_number,
)
from vetclinic.services.tx import commit_or_500, field_error, rollback_on_error

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------
def _load_invoice(db: Session, invoice_id: int, *, lock: bool = False) -> Invoice:
    q = db.query(Invoice).filter(Invoice.id == invoice_id)
    if lock:
        q = q.with_for_update()
    inv = q.first()
    if not inv:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = (db.query(Invoice).options(
        selectinload(Invoice.items),
        selectinload(Invoice.payments),
    ).filter(Invoice.id == invoice_id).first())
    if not inv:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


def paid_total(db: Session, invoice_id: int) -> Decimal:
    total = (db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.invoice_id == invoice_id).scalar())
    return money2(total)


def balance_due(db: Session, inv: Invoice) -> Decimal:
    """Outstanding amount, never negative."""
    bal = money2(inv.total) - paid_total(db, inv.id)
    return bal if bal > 0 else money2(0)


# ---------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------
def derive_status(paid, total, due_date: Optional[date],
                  today: date) -> InvoiceStatus:
    if money_eq_or_above(paid, total):
        return InvoiceStatus.PAID

    status = (InvoiceStatus.PARTIALLY_PAID
              if D(paid) > 0 else InvoiceStatus.PENDING)

    if due_date is not None and due_date < today:
        status = InvoiceStatus.OVERDUE
    return status


def reconcile_status(db: Session,
                     invoice: Invoice,
                     *,
                     today: Optional[date] = None) -> bool:
    """
    Recompute the payment-derived status of an issued invoice.
    Draft and Void are never touched. Writes (without committing) only
    when the status changes; returns True in that case.
    """
    if invoice.status in (InvoiceStatus.DRAFT, InvoiceStatus.VOID):
        return False

    # pending payment rows must be part of the sum
    db.flush()

    new_status = derive_status(
        paid_total(db, invoice.id),
        invoice.total,
        invoice.due_date,
        today or date.today(),
    )
    if new_status == invoice.status:
        return False

    logger.info("Invoice %s status %s -> %s", invoice.invoice_number,
                invoice.status.value, new_status.value)
    invoice.status = new_status
    return True


@rollback_on_error
def reconcile_invoice(db: Session,
                      invoice_id: int,
                      *,
                      user: User,
                      today: Optional[date] = None) -> Tuple[Invoice, bool]:
    inv = _load_invoice(db, invoice_id, lock=True)
    changed = reconcile_status(db, inv, today=today)
    if changed:
        inv.updated_by = user.id
        commit_or_500(db, "reconciling the invoice status")
        db.refresh(inv)
    return inv, changed


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------
def _check_references(db: Session, payload: InvoiceIn) -> Optional[ClinicalRecord]:
    errors: Dict[str, List[str]] = {}

    owner = db.get(Owner, payload.owner_id)
    if not owner:
        errors["owner_id"] = ["Owner not found"]

    if payload.patient_id is not None:
        patient = db.get(Patient, payload.patient_id)
        if not patient:
            errors["patient_id"] = ["Patient not found"]
        elif owner and patient.owner_id != owner.id:
            errors["patient_id"] = ["Patient does not belong to this owner"]

    record = None
    if payload.clinical_record_id is not None:
        record = db.get(ClinicalRecord, payload.clinical_record_id)
        if not record:
            errors["clinical_record_id"] = ["Clinical record not found"]
        elif (payload.patient_id is not None
              and record.patient_id != payload.patient_id):
            errors["clinical_record_id"] = [
                "Clinical record belongs to another patient"
            ]
        elif owner and record.patient and record.patient.owner_id != owner.id:
            errors["clinical_record_id"] = [
                "Clinical record belongs to another owner"
            ]

    for i, line in enumerate(payload.items):
        if line.procedure_id is not None and not db.get(
                Procedure, line.procedure_id):
            errors[f"items.{i}.procedure_id"] = ["Procedure not found"]
        if line.product_id is not None and not db.get(Product,
                                                      line.product_id):
            errors[f"items.{i}.product_id"] = ["Product not found"]

    if errors:
        raise HTTPException(status_code=422,
                            detail={
                                "msg": "Invalid invoice data",
                                "errors": errors
                            })
    return record


def _build_items(payload: InvoiceIn) -> Tuple[List[InvoiceItem], Dict]:
    totals = compute_totals(
        (line.quantity, line.unit_price, line.tax_rate)
        for line in payload.items)

    items: List[InvoiceItem] = []
    for seq, (line, amounts) in enumerate(zip(payload.items, totals["lines"]),
                                          start=1):
        items.append(
            InvoiceItem(
                seq=seq,
                description=line.description.strip(),
                quantity=line.quantity,
                unit_price=money2(line.unit_price),
                tax_rate=line.tax_rate,
                net_amount=amounts["net_amount"],
                tax_amount=amounts["tax_amount"],
                line_total=amounts["line_total"],
                procedure_id=line.procedure_id,
                product_id=line.product_id,
            ))
    return items, totals


def _apply_totals(inv: Invoice, totals: Dict) -> None:
    inv.subtotal = totals["subtotal"]
    inv.tax_amount = totals["tax_amount"]
    inv.total = totals["total"]
    inv.tax_breakdown = totals["tax_breakdown"]


def _apply_header(inv: Invoice, payload: InvoiceIn) -> None:
    issue_date = payload.issue_date or inv.issue_date or date.today()
    if payload.due_date is not None and payload.due_date < issue_date:
        raise field_error(422, "Invalid invoice data",
                          due_date=f"Due date must be on or after the issue date ({issue_date})")
    inv.owner_id = payload.owner_id
    inv.patient_id = payload.patient_id
    inv.issue_date = issue_date
    inv.due_date = payload.due_date
    inv.client_notes = payload.client_notes
    inv.internal_notes = payload.internal_notes


# ---------------------------------------------------------------------
# Create / update / delete (Draft only)
# ---------------------------------------------------------------------
@rollback_on_error
def create_invoice(db: Session, payload: InvoiceIn, *,
                   user: User) -> Tuple[Invoice, List[str]]:
    """
    Insert header and lines in one transaction, always as Draft.
    When the invoice comes from a clinical record the record is linked
    back afterwards; that second write may fail without undoing the
    invoice, in which case a warning is returned.
    """
    record = _check_references(db, payload)

    if payload.origin is not None:
        origin = payload.origin
    elif record is not None:
        origin = InvoiceOrigin.CLINICAL_RECORD
    else:
        origin = InvoiceOrigin.MANUAL

    issue_date = payload.issue_date or date.today()

    number = payload.invoice_number
    if number:
        if invoice_number_taken(db, number):
            raise field_error(409, "Invoice number already in use",
                              invoice_number=f"{number} is already used by another invoice")
    else:
        number = next_invoice_number(db, origin=origin, on_date=issue_date)

    inv = Invoice(
        invoice_number=number,
        origin=origin,
        status=InvoiceStatus.DRAFT,
        issue_date=issue_date,
        created_by=user.id,
        updated_by=user.id,
    )
    _apply_header(inv, payload)
    if record is not None and inv.patient_id is None:
        inv.patient_id = record.patient_id

    items, totals = _build_items(payload)
    inv.items = items
    _apply_totals(inv, totals)

    db.add(inv)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        # a concurrent create took the same number first
        if not invoice_number_taken(db, number):
            raise
        logger.warning("Invoice number %s taken concurrently", number)
        raise field_error(409, "Invoice number already in use",
                          invoice_number=f"{number} was just used by another invoice; save again")
    commit_or_500(db, "creating the invoice")
    db.refresh(inv)
    logger.info("Invoice %s created (draft, total=%s)", inv.invoice_number,
                inv.total)

    warnings: List[str] = []
    if record is not None:
        warning = _link_clinical_record(db, inv, record.id, user)
        if warning:
            warnings.append(warning)
    return inv, warnings


def _link_clinical_record(db: Session, inv: Invoice, record_id: int,
                          user: User) -> Optional[str]:
    try:
        updated = (db.query(ClinicalRecord).filter(
            ClinicalRecord.id == record_id).update(
                {ClinicalRecord.invoice_id: inv.id},
                synchronize_session=False))
        if updated != 1:
            raise LookupError(f"Clinical record {record_id} not found")
        db.commit()
        return None
    except (SQLAlchemyError, LookupError) as e:
        db.rollback()
        logger.warning("Invoice %s created but clinical record %s not linked: %s",
                       inv.invoice_number, record_id, e)
        log_error(
            db,
            description=f"Clinical record link-back failed: {e}",
            kind=PARTIAL_FAILURE,
            module=__name__,
            function="create_invoice",
            user_id=user.id,
            context={
                "invoice_id": inv.id,
                "clinical_record_id": record_id
            },
            exc=e,
        )
        return (f"Invoice {inv.invoice_number} was created but could not be "
                f"linked to clinical record {record_id}.")


def _require_draft(inv: Invoice, action: str) -> None:
    if inv.status != InvoiceStatus.DRAFT:
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} is {inv.status.value}; "
            f"only Draft invoices can be {action}",
        )


@rollback_on_error
def update_invoice(db: Session, invoice_id: int, payload: InvoiceIn, *,
                   user: User) -> Invoice:
    """Full replace of header and lines of a Draft invoice."""
    inv = _load_invoice(db, invoice_id, lock=True)
    _require_draft(inv, "modified")
    record = _check_references(db, payload)

    number = payload.invoice_number
    if number and number != inv.invoice_number:
        if invoice_number_taken(db, number, exclude_id=inv.id):
            raise field_error(409, "Invoice number already in use",
                              invoice_number=f"{number} is already used by another invoice")
        inv.invoice_number = number

    _apply_header(inv, payload)
    if record is not None and inv.patient_id is None:
        inv.patient_id = record.patient_id

    # destructive replace of the lines
    inv.items.clear()
    db.flush()

    items, totals = _build_items(payload)
    inv.items.extend(items)
    _apply_totals(inv, totals)
    inv.updated_by = user.id

    commit_or_500(db, "updating the invoice")
    db.refresh(inv)
    return inv


@rollback_on_error
def delete_invoice(db: Session, invoice_id: int, *, user: User) -> str:
    """Removes a Draft invoice with its lines and payments."""
    inv = _load_invoice(db, invoice_id, lock=True)
    if inv.status != InvoiceStatus.DRAFT:
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} is {inv.status.value}; "
            "issued invoices cannot be deleted, void it instead",
        )

    number = inv.invoice_number
    (db.query(ClinicalRecord).filter(
        ClinicalRecord.invoice_id == inv.id).update(
            {ClinicalRecord.invoice_id: None}, synchronize_session=False))
    db.delete(inv)
    commit_or_500(db, "deleting the invoice")
    logger.info("Invoice %s deleted by user %s", number, user.id)
    return number


# ---------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------
@rollback_on_error
def issue_invoice(db: Session,
                  invoice_id: int,
                  *,
                  user: User,
                  today: Optional[date] = None) -> Invoice:
    inv = _load_invoice(db, invoice_id, lock=True)
    _require_draft(inv, "issued")

    inv.status = InvoiceStatus.PENDING
    inv.issued_at = datetime.utcnow()
    inv.updated_by = user.id
    # a past due date turns it Overdue straight away
    reconcile_status(db, inv, today=today)

    commit_or_500(db, "issuing the invoice")
    db.refresh(inv)
    logger.info("Invoice %s issued, status %s", inv.invoice_number,
                inv.status.value)
    return inv


@rollback_on_error
def void_invoice(db: Session, invoice_id: int, *,
                 user: User) -> Tuple[Invoice, bool]:
    """
    Any issued status -> Void. Void again is a no-op success
    (returns changed=False). Drafts must be deleted instead.
    """
    inv = _load_invoice(db, invoice_id, lock=True)
    if inv.status == InvoiceStatus.VOID:
        return inv, False
    if inv.status == InvoiceStatus.DRAFT:
        raise HTTPException(
            status_code=409,
            detail=f"Invoice {inv.invoice_number} is a Draft; delete it instead of voiding",
        )

    previous = inv.status
    inv.status = InvoiceStatus.VOID
    inv.voided_at = datetime.utcnow()
    inv.updated_by = user.id
    commit_or_500(db, "voiding the invoice")
    db.refresh(inv)
    logger.info("Invoice %s voided (was %s)", inv.invoice_number,
                previous.value)
    return inv, True


# ---------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------
def list_invoices(
    db: Session,
    *,
    status: Optional[InvoiceStatus] = None,
    owner_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    q: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Invoice]:
    query = db.query(Invoice)
    if status is not None:
        query = query.filter(Invoice.status == status)
    if owner_id is not None:
        query = query.filter(Invoice.owner_id == owner_id)
    if patient_id is not None:
        query = query.filter(Invoice.patient_id == patient_id)
    if q:
        like = f"%{q.strip()}%"
        query = query.join(Owner, Owner.id == Invoice.owner_id).filter(
            or_(Invoice.invoice_number.ilike(like),
                Owner.full_name.ilike(like)))
    if date_from:
        query = query.filter(Invoice.issue_date >= date_from)
    if date_to:
        query = query.filter(Invoice.issue_date <= date_to)

    return (query.order_by(Invoice.issue_date.desc(),
                           Invoice.id.desc()).offset(offset).limit(
                               min(limit, 500)).all())


def list_owner_invoices(db: Session, owner_id: int) -> List[Invoice]:
    """Invoices visible on the owner's account pages (no drafts)."""
    return (db.query(Invoice).options(selectinload(Invoice.items)).filter(
        Invoice.owner_id == owner_id,
        Invoice.status != InvoiceStatus.DRAFT,
    ).order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all())
