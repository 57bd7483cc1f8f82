from datetime import date

from vetclinic.models import InvoiceStatus

from helpers import line


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200


def test_requires_token(client):
    r = client.get("/api/invoices")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["msg"] == "Missing token"
    assert body["error"]["code"] == "unauthorized"


def test_invalid_token(client):
    r = client.get("/api/invoices", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["error"]["msg"] == "Invalid token"


def test_client_accounts_cannot_use_dashboard(client, client_headers):
    r = client.get("/api/invoices", headers=client_headers)
    assert r.status_code == 403


def test_invoice_flow(client, staff_headers, owner):
    r = client.post("/api/invoices", headers=staff_headers, json={
        "owner_id": owner.id,
        "items": [line(quantity="2", unit_price="10.00", tax_rate="7")],
    })
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["warnings"] == []
    invoice = body["invoice"]
    assert invoice["status"] == "Draft"
    assert invoice["total"] == "21.40"
    assert invoice["tax_breakdown"] == {"IGIC_7%": {"base": 20.0, "tax": 1.4}}

    inv_id = invoice["id"]
    r = client.post(f"/api/invoices/{inv_id}/issue", headers=staff_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "Pending"

    r = client.post(f"/api/invoices/{inv_id}/payments", headers=staff_headers,
                    json={"amount": "21.40", "method": "card"})
    assert r.status_code == 201, r.text
    assert r.json()["invoice_status"] == "Paid"
    assert r.json()["balance_due"] == "0.00"

    r = client.post(f"/api/invoices/{inv_id}/payments", headers=staff_headers,
                    json={"amount": "1.00", "method": "cash"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "conflict"

    r = client.post(f"/api/invoices/{inv_id}/void", headers=staff_headers)
    assert r.json()["data"]["status"] == "Void"
    assert r.json()["data"]["changed"] is True


def test_validation_errors_are_mapped_by_field(client, staff_headers, owner):
    r = client.post("/api/invoices", headers=staff_headers, json={
        "owner_id": owner.id,
        "items": [line(tax_rate="5")],
    })
    assert r.status_code == 422
    details = r.json()["error"]["details"]
    assert "items.0.tax_rate" in details

    r = client.post("/api/invoices", headers=staff_headers,
                    json={"owner_id": owner.id, "items": []})
    assert r.status_code == 422
    assert "items" in r.json()["error"]["details"]


def test_overpayment_field_error(client, staff_headers, make_invoice):
    inv = make_invoice(issue=True)
    r = client.post(f"/api/invoices/{inv.id}/payments", headers=staff_headers,
                    json={"amount": "30.00", "method": "cash"})
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["details"] == {"amount": ["Amount exceeds the outstanding balance of 21.40"]}


def test_account_pages_show_own_issued_invoices(client, client_headers, make_invoice):
    make_invoice()
    issued = make_invoice(issue=True)

    r = client.get("/api/account/invoices", headers=client_headers)
    assert r.status_code == 200
    rows = r.json()
    assert [row["id"] for row in rows] == [issued.id]
    assert "internal_notes" not in rows[0]

    r = client.get(f"/api/account/invoices/{issued.id}", headers=client_headers)
    assert r.status_code == 200
    assert r.json()["balance_due"] == "21.40"


def test_account_hides_drafts(client, client_headers, make_invoice):
    draft = make_invoice()
    r = client.get(f"/api/account/invoices/{draft.id}", headers=client_headers)
    assert r.status_code == 404


def test_inventory_endpoints(client, staff_headers, vaccine):
    r = client.post(f"/api/inventory/products/{vaccine.id}/lots", headers=staff_headers,
                    json={"lot_number": "L-9", "quantity": 5, "expiry_date": "2090-01-01"})
    assert r.status_code == 201, r.text
    lot = r.json()

    r = client.post(f"/api/inventory/variants/{lot['variant_id']}/movements",
                    headers=staff_headers,
                    json={"lot_id": lot["id"], "movement_type": "sale_out", "quantity": 8})
    assert r.status_code == 409
    assert "Available=5" in r.json()["error"]["msg"]

    r = client.put(f"/api/inventory/variants/{lot['variant_id']}/lots/{lot['id']}",
                   headers=staff_headers, json={"quantity": 12})
    assert r.status_code == 200
    assert r.json()["adjustment"]["movement_type"] == "positive_adjustment"
    assert r.json()["adjustment"]["quantity"] == 7

    r = client.get(f"/api/inventory/products/{vaccine.id}/stock", headers=staff_headers)
    assert r.json()["total_stock"] == 12
    assert r.json()["next_expiry_date"] == "2090-01-01"

    r = client.get("/api/inventory/movements", headers=staff_headers,
                   params={"lot_id": lot["id"]})
    assert len(r.json()) == 2


def test_clinical_record_endpoints(client, staff_headers, patient, vaccine):
    client.post(f"/api/inventory/products/{vaccine.id}/lots", headers=staff_headers,
                json={"lot_number": "L-1", "quantity": 3})
    r = client.post("/api/clinical-records", headers=staff_headers, json={
        "patient_id": patient.id,
        "record_date": str(date(2024, 5, 1)),
        "description": "Booster",
        "items": [{"product_id": vaccine.id, "quantity": 1}],
    })
    assert r.status_code == 201, r.text
    rec_id = r.json()["id"]

    r = client.delete(f"/api/clinical-records/{rec_id}", headers=staff_headers)
    assert r.json() == {"ok": True, "data": {"id": rec_id, "deleted": True}}

    r = client.get(f"/api/inventory/products/{vaccine.id}/stock", headers=staff_headers)
    assert r.json()["total_stock"] == 3


def test_list_invoices_filters_by_status(client, staff_headers, make_invoice):
    make_invoice()
    issued = make_invoice(issue=True)
    r = client.get("/api/invoices", headers=staff_headers,
                   params={"status": InvoiceStatus.PENDING.value})
    assert r.status_code == 200
    assert [row["id"] for row in r.json()] == [issued.id]


def test_invoice_pdf_downloads(client, staff_headers, client_headers, make_invoice):
    draft = make_invoice()
    issued = make_invoice(issue=True)

    r = client.get(f"/api/invoices/{draft.id}/pdf", headers=staff_headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")
    assert draft.invoice_number in r.headers["content-disposition"]

    r = client.get(f"/api/account/invoices/{issued.id}/pdf", headers=client_headers)
    assert r.status_code == 200
    assert r.content.startswith(b"%PDF")

    r = client.get(f"/api/account/invoices/{draft.id}/pdf", headers=client_headers)
    assert r.status_code == 404
