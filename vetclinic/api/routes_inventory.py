# vetclinic/api/routes_inventory.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from vetclinic.api.deps import get_db, require_staff
from vetclinic.api.response import ok
from vetclinic.models.user import User
from vetclinic.schemas.inventory import (
    AddStockIn,
    LotEditOut,
    LotEntryIn,
    LotOut,
    LotUpdateIn,
    MovementIn,
    MovementOut,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    StockSummaryOut,
    VariantIn,
    VariantOut,
    VariantUpdate,
)
from vetclinic.services import catalog_service as catalog
from vetclinic.services import inventory as inv

router = APIRouter(prefix="/inventory", tags=["Inventory"])


# ---------------- Catalog ----------------
@router.get("/products", response_model=List[ProductOut])
def list_products(
        q: Optional[str] = Query(None),
        limit: int = Query(200, ge=1, le=1000),
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.list_products(db, q=q, limit=limit)


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(
        payload: ProductCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.create_product(db, payload, user=user)


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(
        product_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.get_product(db, product_id)


@router.put("/products/{product_id}", response_model=ProductOut)
def update_product(
        product_id: int,
        payload: ProductUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.update_product(db, product_id, payload, user=user)


@router.delete("/products/{product_id}")
def delete_product(
        product_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    catalog.delete_product(db, product_id, user=user)
    return ok({"id": product_id, "deleted": True})


@router.post("/products/{product_id}/variants",
             response_model=VariantOut,
             status_code=201)
def add_variant(
        product_id: int,
        payload: VariantIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.add_variant(db, product_id, payload, user=user)


@router.put("/variants/{variant_id}", response_model=VariantOut)
def update_variant(
        variant_id: int,
        payload: VariantUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return catalog.update_variant(db, variant_id, payload, user=user)


# ---------------- Stock ----------------
@router.get("/products/{product_id}/stock", response_model=StockSummaryOut)
def product_stock(
        product_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    product = catalog.get_product(db, product_id)
    return inv.product_stock_summary(db, product)


@router.post("/products/{product_id}/lots", response_model=LotOut, status_code=201)
def register_lot(
        product_id: int,
        payload: LotEntryIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.register_lot_entry(db, product_id=product_id, payload=payload, user=user)


@router.post("/variants/{variant_id}/stock", response_model=MovementOut, status_code=201)
def add_stock(
        variant_id: int,
        payload: AddStockIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.add_stock(db, variant_id=variant_id, payload=payload, user=user)


@router.post("/variants/{variant_id}/movements",
             response_model=MovementOut,
             status_code=201)
def record_movement(
        variant_id: int,
        payload: MovementIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.record_movement(
        db,
        variant_id=variant_id,
        lot_id=payload.lot_id,
        movement_type=payload.movement_type,
        quantity=payload.quantity,
        notes=payload.notes,
        user=user,
    )


@router.put("/variants/{variant_id}/lots/{lot_id}", response_model=LotEditOut)
def edit_lot(
        variant_id: int,
        lot_id: int,
        payload: LotUpdateIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    lot, movement = inv.edit_lot(db,
                                 lot_id=lot_id,
                                 variant_id=variant_id,
                                 payload=payload,
                                 user=user)
    return LotEditOut(
        lot=LotOut.model_validate(lot),
        adjustment=MovementOut.model_validate(movement) if movement else None,
    )


@router.post("/lots/{lot_id}/deactivate", response_model=LotOut)
def deactivate_lot(
        lot_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.deactivate_lot(db, lot_id=lot_id, user=user)


@router.post("/lots/{lot_id}/reactivate", response_model=LotOut)
def reactivate_lot(
        lot_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.reactivate_lot(db, lot_id=lot_id, user=user)


@router.get("/movements", response_model=List[MovementOut])
def list_movements(
        product_id: Optional[int] = Query(None),
        variant_id: Optional[int] = Query(None),
        lot_id: Optional[int] = Query(None),
        clinical_record_id: Optional[int] = Query(None),
        limit: int = Query(200, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        user: User = Depends(require_staff),
):
    return inv.list_movements(
        db,
        product_id=product_id,
        variant_id=variant_id,
        lot_id=lot_id,
        clinical_record_id=clinical_record_id,
        limit=limit,
        offset=offset,
    )
