# FILE: vetclinic/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Date,
    DateTime,
    Enum,
    Index,
    ForeignKey,
    Text,
    JSON,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from vetclinic.db.base import Base, MYSQL_ARGS

Money = Numeric(12, 2)


class InvoiceStatus(str, enum.Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    PARTIALLY_PAID = "PartiallyPaid"
    PAID = "Paid"
    OVERDUE = "Overdue"
    VOID = "Void"


class InvoiceOrigin(str, enum.Enum):
    MANUAL = "manual"
    STORE_ORDER = "store_order"
    CLINICAL_RECORD = "clinical_record"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    BIZUM = "bizum"
    OTHER = "other"


class Invoice(Base):
    """
    Invoice header.

    subtotal / tax_amount / total / tax_breakdown are always recomputed
    from the lines (see services.billing_math), never entered directly.

    status:
      Draft -> (issue) Pending
      Pending / PartiallyPaid / Paid / Overdue are derived from payments
      and due date by services.invoice_service.reconcile_status
      Void is terminal
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_owner_status", "owner_id", "status"),
        Index("ix_invoices_issue_date", "issue_date"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)

    # FAC-2024-0001, WEB-2024-0001, HC-2024-0001 ...
    invoice_number = Column(String(32), unique=True, index=True, nullable=False)
    origin = Column(Enum(InvoiceOrigin, name="invoice_origin"),
                    nullable=False,
                    default=InvoiceOrigin.MANUAL)

    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)

    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)

    status = Column(Enum(InvoiceStatus, name="invoice_status"),
                    nullable=False,
                    default=InvoiceStatus.DRAFT)

    # subtotal = sum(line net), tax_amount = sum(line tax)
    subtotal = Column(Money, nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    total = Column(Money, nullable=False, default=Decimal("0.00"))

    # {"IGIC_7%": {"base": 20.0, "tax": 1.4}, ...}
    tax_breakdown = Column(JSON, nullable=True)

    client_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    issued_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    owner = relationship("Owner", back_populates="invoices")
    patient = relationship("Patient")

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.seq",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.payment_date",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        Index("ix_invoice_items_invoice", "invoice_id"),
        CheckConstraint("quantity > 0", name="ck_invoice_items_qty_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_items_price"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # S.no order for UI/print
    seq = Column(Integer, default=1)

    description = Column(String(300), nullable=False)

    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Money, nullable=False, default=0)

    # tax in %, one of settings.TAX_RATES
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)

    # net = qty * unit_price, tax = net * rate / 100, total = net + tax
    net_amount = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=False, default=0)
    line_total = Column(Money, nullable=False, default=0)

    # traceability, at most one of these
    procedure_id = Column(Integer, ForeignKey("procedures.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    invoice = relationship("Invoice", back_populates="items")


class Payment(Base):
    """
    Payments tagged to an invoice. Every insert/update/delete is followed
    by status reconciliation of the parent invoice.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_invoice", "invoice_id"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    payment_date = Column(Date, nullable=False, default=date.today)
    amount = Column(Money, nullable=False)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(String(255), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    invoice = relationship("Invoice", back_populates="payments")
