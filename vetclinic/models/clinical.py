# FILE: vetclinic/models/clinical.py
from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    Text,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from vetclinic.db.base import Base, MYSQL_ARGS


class Procedure(Base):
    """Catalog of billable clinical procedures (consultation, vaccine...)."""
    __tablename__ = "procedures"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, unique=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, default=True, nullable=False)


class ClinicalRecord(Base):
    """
    One entry of a patient's clinical history.
    Products used during the visit are listed in items and consumed from
    stock as internal_use_out movements tagged with this record's id.
    """
    __tablename__ = "clinical_records"
    __table_args__ = (
        Index("ix_clinical_records_patient_date", "patient_id", "record_date"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    record_date = Column(Date, nullable=False, default=date.today)
    record_type = Column(String(60), nullable=False, default="consultation")
    description = Column(Text, nullable=False, default="")
    diagnosis = Column(Text, nullable=True)
    treatment = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # back-reference set after an invoice is generated from this record
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)

    vet_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    patient = relationship("Patient")
    items = relationship(
        "ClinicalRecordItem",
        back_populates="record",
        cascade="all, delete-orphan",
    )


class ClinicalRecordItem(Base):
    __tablename__ = "clinical_record_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_clinical_record_items_qty"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(Integer, ForeignKey("clinical_records.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    notes = Column(String(255), nullable=True)

    record = relationship("ClinicalRecord", back_populates="items")
    product = relationship("Product")
