# vetclinic/schemas/inventory.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from vetclinic.models.inventory import MovementType, StockUnit
from vetclinic.schemas.billing import check_tax_rate


# ---------------- Catalog ----------------
class VariantIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sku: Optional[str] = Field(None, max_length=100)
    attributes: Optional[Dict[str, Any]] = None
    price: Decimal = Field(Decimal("0.00"), ge=0)
    is_active: bool = True

    @field_validator("sku", mode="before")
    @classmethod
    def blank_sku(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class VariantUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sku: Optional[str] = Field(None, max_length=100)
    attributes: Optional[Dict[str, Any]] = None
    price: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    unit: StockUnit = StockUnit.UNIT
    requires_lot: bool = False
    tax_rate: Decimal = Decimal("0")
    min_stock: int = Field(0, ge=0)
    is_public: bool = False
    is_store_visible: bool = False
    image_urls: List[str] = []
    internal_notes: Optional[str] = None

    # none given -> one default variant
    variants: List[VariantIn] = []

    @field_validator("tax_rate")
    @classmethod
    def tax_rate_allowed(cls, v: Decimal) -> Decimal:
        return check_tax_rate(v)


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    unit: Optional[StockUnit] = None
    requires_lot: Optional[bool] = None
    tax_rate: Optional[Decimal] = None
    min_stock: Optional[int] = Field(None, ge=0)
    is_public: Optional[bool] = None
    is_store_visible: Optional[bool] = None
    image_urls: Optional[List[str]] = None
    internal_notes: Optional[str] = None

    @field_validator("tax_rate")
    @classmethod
    def tax_rate_allowed(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return None if v is None else check_tax_rate(v)


# ---------------- Stock input ----------------
class LotEntryIn(BaseModel):
    lot_number: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    entry_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @field_validator("lot_number")
    @classmethod
    def strip_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Lot number is required")
        return v


class AddStockIn(BaseModel):
    quantity: int = Field(..., gt=0)
    lot_number: Optional[str] = Field(None, max_length=100)
    entry_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("lot_number", mode="before")
    @classmethod
    def blank_lot(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class MovementIn(BaseModel):
    lot_id: Optional[int] = None
    movement_type: MovementType
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)


class LotUpdateIn(BaseModel):
    """
    Manual lot correction. Only fields that are sent are applied;
    sending expiry_date=null clears the expiry.
    """
    lot_number: Optional[str] = Field(None, min_length=1, max_length=100)
    quantity: Optional[int] = Field(None, ge=0)
    entry_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @model_validator(mode="after")
    def entry_date_not_null(self) -> "LotUpdateIn":
        if "entry_date" in self.model_fields_set and self.entry_date is None:
            raise ValueError("entry_date cannot be cleared")
        return self


# ---------------- Output ----------------
class LotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: int
    lot_number: str
    quantity: int
    entry_date: date
    expiry_date: Optional[date] = None
    is_active: bool


class VariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    sku: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    price: Decimal
    stock_quantity: int
    is_active: bool
    lots: List[LotOut] = []


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    unit: StockUnit
    requires_lot: bool
    tax_rate: Decimal
    min_stock: int
    is_public: bool
    is_store_visible: bool
    image_urls: Optional[List[str]] = None
    internal_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    variants: List[VariantOut] = []


class MovementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: int
    lot_id: Optional[int] = None
    movement_type: MovementType
    quantity: int
    clinical_record_id: Optional[int] = None
    reverses_movement_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime


class VariantStockOut(BaseModel):
    variant_id: int
    sku: Optional[str] = None
    available: int


class StockSummaryOut(BaseModel):
    product_id: int
    name: str
    requires_lot: bool
    min_stock: int
    total_stock: int
    below_min: bool
    next_expiry_date: Optional[date] = None
    variants: List[VariantStockOut] = []


class LotEditOut(BaseModel):
    lot: LotOut
    adjustment: Optional[MovementOut] = None
