from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from vetclinic.models import (
    ClinicalRecord,
    ErrorLog,
    Invoice,
    InvoiceItem,
    InvoiceOrigin,
    InvoiceStatus,
    Patient,
)
from vetclinic.schemas.billing import InvoiceIn
from vetclinic.services import invoice_service as svc

from helpers import line


def test_create_computes_totals_and_starts_as_draft(make_invoice):
    inv = make_invoice([line(quantity="2", unit_price="10.00", tax_rate="7")])

    assert inv.status == InvoiceStatus.DRAFT
    assert inv.origin == InvoiceOrigin.MANUAL
    assert inv.invoice_number == f"FAC-{date.today().year}-0001"
    assert inv.subtotal == Decimal("20.00")
    assert inv.tax_amount == Decimal("1.40")
    assert inv.total == Decimal("21.40")
    assert inv.tax_breakdown == {"IGIC_7%": {"base": 20.0, "tax": 1.4}}
    assert [i.line_total for i in inv.items] == [Decimal("21.40")]


def test_numbers_increment(make_invoice):
    first = make_invoice()
    second = make_invoice()
    year = date.today().year
    assert (first.invoice_number, second.invoice_number) == (
        f"FAC-{year}-0001", f"FAC-{year}-0002")


def test_create_rejects_patient_of_other_owner(db, staff, other_owner, patient):
    payload = InvoiceIn(owner_id=other_owner.id, patient_id=patient.id, items=[line()])
    with pytest.raises(HTTPException) as exc:
        svc.create_invoice(db, payload, user=staff)
    assert exc.value.status_code == 422
    assert "patient_id" in exc.value.detail["errors"]
    assert db.query(Invoice).count() == 0


def test_create_rejects_clinical_record_of_other_owner(db, staff, owner, other_owner):
    pet = Patient(owner_id=other_owner.id, name="Nala", species="cat")
    db.add(pet)
    db.flush()
    record = ClinicalRecord(patient_id=pet.id, description="Spay", vet_id=staff.id)
    db.add(record)
    db.commit()

    payload = InvoiceIn(owner_id=owner.id, clinical_record_id=record.id, items=[line()])
    with pytest.raises(HTTPException) as exc:
        svc.create_invoice(db, payload, user=staff)
    assert exc.value.status_code == 422
    assert exc.value.detail["errors"]["clinical_record_id"] == [
        "Clinical record belongs to another owner"]
    assert db.query(Invoice).count() == 0


def test_create_rejects_duplicate_number(db, staff, owner, make_invoice):
    make_invoice(invoice_number="FAC-2024-0100")
    payload = InvoiceIn(owner_id=owner.id, invoice_number="FAC-2024-0100", items=[line()])
    with pytest.raises(HTTPException) as exc:
        svc.create_invoice(db, payload, user=staff)
    assert exc.value.status_code == 409
    assert "invoice_number" in exc.value.detail["errors"]
    assert db.query(Invoice).count() == 1


def test_create_rejects_unknown_procedure(db, staff, owner):
    payload = InvoiceIn(owner_id=owner.id, items=[line(procedure_id=999)])
    with pytest.raises(HTTPException) as exc:
        svc.create_invoice(db, payload, user=staff)
    assert exc.value.detail["errors"] == {"items.0.procedure_id": ["Procedure not found"]}


def test_line_cannot_reference_procedure_and_product():
    with pytest.raises(ValueError):
        InvoiceIn(owner_id=1, items=[line(procedure_id=1, product_id=2)])


def test_line_tax_rate_must_be_allowed():
    with pytest.raises(ValueError):
        InvoiceIn(owner_id=1, items=[line(tax_rate="5")])


def test_due_date_not_before_issue_date():
    with pytest.raises(ValueError):
        InvoiceIn(owner_id=1, issue_date=date(2024, 5, 1), due_date=date(2024, 4, 1),
                  items=[line()])


def test_create_from_clinical_record_links_back(db, staff, owner, clinical_record):
    payload = InvoiceIn(owner_id=owner.id, clinical_record_id=clinical_record.id,
                        items=[line()])
    inv, warnings = svc.create_invoice(db, payload, user=staff)

    assert warnings == []
    assert inv.origin == InvoiceOrigin.CLINICAL_RECORD
    assert inv.invoice_number.startswith("HC-")
    assert inv.patient_id == clinical_record.patient_id
    db.refresh(clinical_record)
    assert clinical_record.invoice_id == inv.id


def test_link_back_failure_keeps_invoice_and_warns(db, staff, owner, clinical_record, monkeypatch):
    real_commit = db.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("UPDATE clinical_records", {}, Exception("lock wait timeout"))
        real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)

    payload = InvoiceIn(owner_id=owner.id, clinical_record_id=clinical_record.id,
                        items=[line()])
    inv, warnings = svc.create_invoice(db, payload, user=staff)

    assert len(warnings) == 1
    assert inv.invoice_number in warnings[0]
    assert db.get(Invoice, inv.id) is not None
    assert db.get(ClinicalRecord, clinical_record.id).invoice_id is None
    logged = db.query(ErrorLog).one()
    assert logged.context == {"invoice_id": inv.id, "clinical_record_id": clinical_record.id}
    assert logged.kind == "partial_failure"
    assert logged.user_id == staff.id
    assert "lock wait timeout" in logged.stack_trace


def test_update_replaces_lines(db, staff, owner, make_invoice):
    inv = make_invoice([line(quantity="2"), line(description="Deworming", unit_price="5.00", tax_rate="0")])
    payload = InvoiceIn(owner_id=owner.id, items=[line(quantity="3", tax_rate="3")],
                        client_notes="Thanks")
    inv = svc.update_invoice(db, inv.id, payload, user=staff)

    assert len(inv.items) == 1
    assert inv.subtotal == Decimal("30.00")
    assert inv.tax_amount == Decimal("0.90")
    assert inv.total == Decimal("30.90")
    assert inv.tax_breakdown == {"IGIC_3%": {"base": 30.0, "tax": 0.9}}
    assert inv.client_notes == "Thanks"
    assert db.query(InvoiceItem).count() == 1


def test_update_number_conflict(db, staff, owner, make_invoice):
    a = make_invoice()
    b = make_invoice()
    payload = InvoiceIn(owner_id=owner.id, invoice_number=a.invoice_number, items=[line()])
    with pytest.raises(HTTPException) as exc:
        svc.update_invoice(db, b.id, payload, user=staff)
    assert exc.value.status_code == 409

    # keeping its own number is fine
    payload = InvoiceIn(owner_id=owner.id, invoice_number=b.invoice_number, items=[line()])
    assert svc.update_invoice(db, b.id, payload, user=staff).invoice_number == b.invoice_number


def test_update_rejected_after_issue(db, staff, owner, make_invoice):
    inv = make_invoice(issue=True)
    payload = InvoiceIn(owner_id=owner.id, items=[line(unit_price="99.00")])
    with pytest.raises(HTTPException) as exc:
        svc.update_invoice(db, inv.id, payload, user=staff)
    assert exc.value.status_code == 409
    db.refresh(inv)
    assert inv.total == Decimal("21.40")


def test_delete_draft_removes_lines(db, staff, make_invoice):
    inv = make_invoice()
    number = svc.delete_invoice(db, inv.id, user=staff)
    assert number == inv.invoice_number
    assert db.query(Invoice).count() == 0
    assert db.query(InvoiceItem).count() == 0


def test_delete_issued_rejected(db, staff, make_invoice):
    inv = make_invoice(issue=True)
    with pytest.raises(HTTPException) as exc:
        svc.delete_invoice(db, inv.id, user=staff)
    assert exc.value.status_code == 409
    assert db.query(Invoice).count() == 1


def test_issue_moves_draft_to_pending(db, staff, make_invoice):
    inv = make_invoice(issue=True)
    assert inv.status == InvoiceStatus.PENDING
    assert inv.issued_at is not None

    with pytest.raises(HTTPException) as exc:
        svc.issue_invoice(db, inv.id, user=staff)
    assert exc.value.status_code == 409


def test_issue_past_due_becomes_overdue(make_invoice):
    inv = make_invoice(issue=True, today=date(2024, 6, 1),
                       issue_date=date(2024, 1, 1), due_date=date(2024, 2, 1))
    assert inv.status == InvoiceStatus.OVERDUE


def test_void_rules(db, staff, make_invoice):
    draft = make_invoice()
    with pytest.raises(HTTPException) as exc:
        svc.void_invoice(db, draft.id, user=staff)
    assert exc.value.status_code == 409

    inv = make_invoice(issue=True)
    inv, changed = svc.void_invoice(db, inv.id, user=staff)
    assert changed and inv.status == InvoiceStatus.VOID
    voided_at = inv.voided_at

    inv, changed = svc.void_invoice(db, inv.id, user=staff)
    assert not changed
    assert inv.status == InvoiceStatus.VOID
    assert inv.voided_at == voided_at


def test_missing_invoice_is_404(db, staff):
    with pytest.raises(HTTPException) as exc:
        svc.issue_invoice(db, 12345, user=staff)
    assert exc.value.status_code == 404


@pytest.mark.parametrize("paid,due,expected", [
    ("0", None, InvoiceStatus.PENDING),
    ("10.00", None, InvoiceStatus.PARTIALLY_PAID),
    ("21.40", None, InvoiceStatus.PAID),
    ("21.3995", None, InvoiceStatus.PAID),
    ("10.00", date(2024, 1, 1), InvoiceStatus.OVERDUE),
    ("0", date(2024, 1, 1), InvoiceStatus.OVERDUE),
    ("21.40", date(2024, 1, 1), InvoiceStatus.PAID),
    ("0", date(2024, 6, 1), InvoiceStatus.PENDING),
])
def test_derive_status(paid, due, expected):
    assert svc.derive_status(Decimal(paid), Decimal("21.40"), due, date(2024, 6, 1)) == expected


def test_reconcile_leaves_draft_and_void_alone(db, staff, make_invoice):
    draft = make_invoice(due_date=date.today())
    assert svc.reconcile_status(db, draft, today=date(2099, 1, 1)) is False
    assert draft.status == InvoiceStatus.DRAFT

    inv = make_invoice(issue=True)
    inv, _ = svc.void_invoice(db, inv.id, user=staff)
    assert svc.reconcile_status(db, inv, today=date(2099, 1, 1)) is False
    assert inv.status == InvoiceStatus.VOID


def test_reconcile_invoice_marks_overdue(db, staff, make_invoice):
    inv = make_invoice(issue=True, due_date=date.today())
    inv, changed = svc.reconcile_invoice(db, inv.id, user=staff, today=date(2099, 1, 1))
    assert changed
    assert inv.status == InvoiceStatus.OVERDUE

    _, changed = svc.reconcile_invoice(db, inv.id, user=staff, today=date(2099, 1, 1))
    assert not changed


def test_owner_listing_hides_drafts(db, owner, make_invoice):
    make_invoice()
    issued = make_invoice(issue=True)
    assert [i.id for i in svc.list_owner_invoices(db, owner.id)] == [issued.id]


def test_list_filters(db, make_invoice):
    make_invoice()
    issued = make_invoice(issue=True)
    assert [i.id for i in svc.list_invoices(db, status=InvoiceStatus.PENDING)] == [issued.id]
    assert len(svc.list_invoices(db, q="Ana")) == 2
    assert [i.id for i in svc.list_invoices(db, q=issued.invoice_number)] == [issued.id]


def test_concurrent_number_collision_is_a_field_error(db, staff, owner, make_invoice, monkeypatch):
    first = make_invoice()
    # another request allocated the same number between lookup and insert
    monkeypatch.setattr(svc, "next_invoice_number", lambda db, **kw: first.invoice_number)

    with pytest.raises(HTTPException) as exc:
        svc.create_invoice(db, InvoiceIn(owner_id=owner.id, items=[line()]), user=staff)
    assert exc.value.status_code == 409
    assert "invoice_number" in exc.value.detail["errors"]
    assert db.query(Invoice).count() == 1


def test_update_checks_due_date_against_stored_issue_date(db, staff, owner, make_invoice):
    issued_on = date(2024, 3, 1)
    inv = make_invoice(issue_date=issued_on)

    payload = InvoiceIn(owner_id=owner.id, due_date=date(2024, 3, 11), items=[line()])
    inv = svc.update_invoice(db, inv.id, payload, user=staff)
    assert inv.issue_date == issued_on
    assert inv.due_date == date(2024, 3, 11)

    payload = InvoiceIn(owner_id=owner.id, due_date=date(2024, 2, 1), items=[line()])
    with pytest.raises(HTTPException) as exc:
        svc.update_invoice(db, inv.id, payload, user=staff)
    assert exc.value.status_code == 422
    assert "due_date" in exc.value.detail["errors"]
