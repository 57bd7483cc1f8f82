# vetclinic/services/invoice_numbers.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from vetclinic.core.config import settings
from vetclinic.models.billing import Invoice, InvoiceOrigin


def prefix_for(origin: InvoiceOrigin) -> str:
    if origin == InvoiceOrigin.STORE_ORDER:
        return settings.INVOICE_PREFIX_STORE
    if origin == InvoiceOrigin.CLINICAL_RECORD:
        return settings.INVOICE_PREFIX_CLINICAL
    return settings.INVOICE_PREFIX_MANUAL


def next_invoice_number(db: Session,
                        *,
                        origin: InvoiceOrigin = InvoiceOrigin.MANUAL,
                        on_date: Optional[date] = None) -> str:
    """
    FAC-2024-0001, FAC-2024-0002 ... one series per prefix and year.
    The next number is the highest numeric suffix + 1; suffixes that
    are not numbers (hand-typed numbers) are skipped.
    """
    year = (on_date or date.today()).year
    stem = f"{prefix_for(origin)}-{year}-"

    rows = (db.query(Invoice.invoice_number).filter(
        Invoice.invoice_number.like(f"{stem}%")).all())

    highest = 0
    for (number, ) in rows:
        suffix = (number or "")[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))

    return f"{stem}{str(highest + 1).zfill(settings.INVOICE_NUMBER_PADDING)}"


def invoice_number_taken(db: Session,
                         number: str,
                         exclude_id: Optional[int] = None) -> bool:
    q = db.query(Invoice.id).filter(Invoice.invoice_number == number)
    if exclude_id is not None:
        q = q.filter(Invoice.id != exclude_id)
    return db.query(q.exists()).scalar()
