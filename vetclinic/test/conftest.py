"""
Pytest configuration and fixtures for the clinic backend tests.
Every test gets a fresh in-memory SQLite database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vetclinic.api.deps import get_db
from vetclinic.core.security import hash_password
from vetclinic.db.base import Base
from vetclinic.main import app
from vetclinic.models import (
    ClinicalRecord,
    Owner,
    Patient,
    Procedure,
    Product,
    ProductVariant,
    User,
)
from vetclinic.schemas.billing import InvoiceIn
from vetclinic.services.invoice_service import create_invoice, issue_invoice
from vetclinic.utils.jwt import create_access_token

from helpers import line

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope='function')
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ---------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------
@pytest.fixture
def staff(db):
    user = User(name="Front Desk", email="staff@clinic.test", role="staff",
                password_hash=hash_password("s3cret"))
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def client_user(db):
    user = User(name="Ana Client", email="ana@example.test", role="client")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def owner(db, client_user):
    o = Owner(full_name="Ana Pérez", email="ana@example.test", user_id=client_user.id)
    db.add(o)
    db.commit()
    return o


@pytest.fixture
def other_owner(db):
    o = Owner(full_name="Luis Gómez")
    db.add(o)
    db.commit()
    return o


@pytest.fixture
def patient(db, owner):
    p = Patient(owner_id=owner.id, name="Toby", species="dog")
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def procedure(db):
    p = Procedure(name="Consultation", price=Decimal("10.00"), tax_rate=Decimal("7"))
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def vaccine(db):
    """Lot-tracked product with a single variant and no stock."""
    p = Product(name="Rabies vaccine", requires_lot=True, tax_rate=Decimal("0"), min_stock=5)
    p.variants = [ProductVariant(sku="VAC-RAB", price=Decimal("25.00"))]
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def food(db):
    """Product without lots; stock lives on the variant."""
    p = Product(name="Dog food 5kg", requires_lot=False, tax_rate=Decimal("7"))
    p.variants = [ProductVariant(sku="FOOD-5", price=Decimal("30.00"))]
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def collar(db):
    p = Product(name="Collar", requires_lot=True)
    p.variants = [
        ProductVariant(sku="COL-S", attributes={"size": "S"}),
        ProductVariant(sku="COL-L", attributes={"size": "L"}),
    ]
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def clinical_record(db, patient, staff):
    rec = ClinicalRecord(patient_id=patient.id, description="Annual check", vet_id=staff.id)
    db.add(rec)
    db.commit()
    return rec


# ---------------------------------------------------------------------
# Invoice helpers
# ---------------------------------------------------------------------
@pytest.fixture
def make_invoice(db, staff, owner):
    """Create a draft invoice; issue=True also issues it."""

    def _make(lines=None, issue=False, today=None, **header):
        data = {"owner_id": owner.id, "items": lines or [line(quantity="2")]}
        data.update(header)
        inv, _warnings = create_invoice(db, InvoiceIn(**data), user=staff)
        if issue:
            inv = issue_invoice(db, inv.id, user=staff, today=today)
        return inv

    return _make


# ---------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------
@pytest.fixture(scope='function')
def client(db):
    """FastAPI test client sharing the test session."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers(staff):
    return {"Authorization": f"Bearer {create_access_token(staff.email)}"}


@pytest.fixture
def client_headers(client_user, owner):
    return {"Authorization": f"Bearer {create_access_token(client_user.email)}"}
