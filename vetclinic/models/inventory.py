# FILE: vetclinic/models/inventory.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric,
    ForeignKey, Text, Enum, CheckConstraint, Index, UniqueConstraint, JSON
)
from sqlalchemy.orm import relationship

from vetclinic.db.base import Base, MYSQL_ARGS

Money = Numeric(12, 2)


# -------------------------
# Enums
# -------------------------
class MovementType(str, enum.Enum):
    PURCHASE_IN = "purchase_in"
    SALE_OUT = "sale_out"
    ONLINE_SALE_OUT = "online_sale_out"
    INTERNAL_USE_OUT = "internal_use_out"
    POSITIVE_ADJUSTMENT = "positive_adjustment"
    NEGATIVE_ADJUSTMENT = "negative_adjustment"
    CUSTOMER_RETURN_IN = "customer_return_in"
    SUPPLIER_RETURN_OUT = "supplier_return_out"
    TRANSFER = "transfer"


INBOUND_MOVEMENTS = frozenset({
    MovementType.PURCHASE_IN,
    MovementType.POSITIVE_ADJUSTMENT,
    MovementType.CUSTOMER_RETURN_IN,
})


class StockUnit(str, enum.Enum):
    UNIT = "unit"
    BOX = "box"
    BLISTER = "blister"
    BOTTLE = "bottle"
    TUBE = "tube"
    BAG = "bag"
    ML = "ml"
    L = "l"
    G = "g"
    KG = "kg"
    DOSE = "dose"
    OTHER = "other"


# -------------------------
# Catalog
# -------------------------
class Product(Base):
    __tablename__ = "products"
    __table_args__ = MYSQL_ARGS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    unit = Column(Enum(StockUnit, name="stock_unit"), nullable=False, default=StockUnit.UNIT)

    # lot-tracked products keep stock in Lot rows, others on the variant
    requires_lot = Column(Boolean, default=False, nullable=False)

    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    min_stock = Column(Integer, nullable=False, default=0)

    is_public = Column(Boolean, default=False, nullable=False)
    is_store_visible = Column(Boolean, default=False, nullable=False)

    # URLs only, blobs live in object storage
    image_urls = Column(JSON, nullable=True)

    internal_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )


class ProductVariant(Base):
    """
    Purchasable configuration of a product (size/colour...).
    stock_quantity is only meaningful when the product is not lot-tracked.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_variant_stock_non_negative"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    sku = Column(String(100), unique=True, nullable=True, index=True)
    # {"size": "5kg", "flavour": "chicken"}
    attributes = Column(JSON, nullable=True)
    price = Column(Money, nullable=False, default=Decimal("0.00"))

    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="variants")
    lots = relationship("Lot", back_populates="variant", cascade="all, delete-orphan")


class Lot(Base):
    """
    Dated batch of a variant's stock.
    is_active=False hides the lot from available stock and from new
    outbound movements but keeps its movement history.
    """
    __tablename__ = "lots"
    __table_args__ = (
        UniqueConstraint("variant_id", "lot_number", name="uq_lots_variant_number"),
        CheckConstraint("quantity >= 0", name="ck_lots_quantity_non_negative"),
        Index("ix_lots_variant_expiry", "variant_id", "expiry_date"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False, index=True)

    lot_number = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    entry_date = Column(Date, nullable=False, default=date.today)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    variant = relationship("ProductVariant", back_populates="lots")


# -------------------------
# Ledger
# -------------------------
class InventoryMovement(Base):
    """
    Immutable stock ledger entry. quantity is always positive, the
    direction comes from movement_type (see INBOUND_MOVEMENTS).
    Corrections are new rows, never edits.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        Index("ix_movements_variant_time", "variant_id", "created_at"),
        Index("ix_movements_clinical_record", "clinical_record_id"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    lot_id = Column(Integer, ForeignKey("lots.id"), nullable=True, index=True)

    movement_type = Column(Enum(MovementType, name="movement_type"), nullable=False)
    quantity = Column(Integer, nullable=False)

    # internal use caused by a clinical record
    clinical_record_id = Column(Integer, ForeignKey("clinical_records.id", ondelete="SET NULL"), nullable=True)
    # set on compensating rows
    reverses_movement_id = Column(Integer, ForeignKey("inventory_movements.id"), nullable=True, index=True)

    notes = Column(String(500), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    variant = relationship("ProductVariant")
    lot = relationship("Lot")
