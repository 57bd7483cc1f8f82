# FILE: vetclinic/services/inventory.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import case, func, or_, update
from sqlalchemy.orm import Session, joinedload

from vetclinic.models.inventory import (
    INBOUND_MOVEMENTS,
    InventoryMovement,
    Lot,
    MovementType,
    Product,
    ProductVariant,
)
from vetclinic.models.user import User
from vetclinic.schemas.inventory import AddStockIn, LotEntryIn, LotUpdateIn
from vetclinic.services.tx import commit_or_500, field_error, rollback_on_error

logger = logging.getLogger(__name__)


class InsufficientStockError(ValueError):

    def __init__(self, label: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for {label}. "
                         f"Available={available}, Requested={requested}")


def is_inbound(movement_type: MovementType) -> bool:
    return movement_type in INBOUND_MOVEMENTS


def create_movement(
    db: Session,
    *,
    user: Optional[User],
    variant_id: int,
    movement_type: MovementType,
    quantity: int,
    lot_id: Optional[int] = None,
    notes: str = "",
    clinical_record_id: Optional[int] = None,
    reverses_movement_id: Optional[int] = None,
) -> InventoryMovement:
    """
    Central creator for InventoryMovement; every stock change goes through here.
    quantity is the absolute amount; direction comes from movement_type.
    """
    if quantity <= 0:
        raise ValueError("Movement quantity must be > 0")
    mv = InventoryMovement(
        variant_id=variant_id,
        lot_id=lot_id,
        movement_type=movement_type,
        quantity=quantity,
        notes=(notes or "")[:500] or None,
        clinical_record_id=clinical_record_id,
        reverses_movement_id=reverses_movement_id,
        created_by=getattr(user, "id", None),
    )
    db.add(mv)
    return mv


# ---------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------
def get_variant(db: Session, variant_id: int) -> ProductVariant:
    v = (db.query(ProductVariant).options(joinedload(
        ProductVariant.product)).filter(ProductVariant.id == variant_id).first())
    if not v:
        raise HTTPException(status_code=404, detail="Variant not found")
    return v


def get_lot(db: Session, lot_id: int, variant_id: Optional[int] = None) -> Lot:
    lot = db.query(Lot).filter(Lot.id == lot_id).first()
    if not lot or (variant_id is not None and lot.variant_id != variant_id):
        raise HTTPException(status_code=404, detail="Lot not found")
    return lot


def resolve_single_variant(product: Product) -> ProductVariant:
    """Stock operations addressed by product need exactly one variant."""
    variants = list(product.variants or [])
    if not variants:
        raise HTTPException(status_code=404,
                            detail=f"Product {product.name} has no variant")
    if len(variants) > 1:
        raise HTTPException(
            status_code=400,
            detail=f"Product {product.name} has several variants; choose one",
        )
    return variants[0]


def _variant_label(variant: ProductVariant) -> str:
    name = variant.product.name if variant.product else f"variant {variant.id}"
    return f"{name} ({variant.sku})" if variant.sku else name


# ---------------------------------------------------------------------
# Quantity updates (single conditional UPDATE, no read-modify-write)
# ---------------------------------------------------------------------
def apply_lot_delta(db: Session, lot: Lot, delta: int) -> None:
    """
    Positive delta = stock in, negative delta = stock out.
    Decrements only succeed while the lot still holds enough stock.
    """
    stmt = update(Lot).where(Lot.id == lot.id)
    if delta < 0:
        stmt = stmt.where(Lot.quantity >= -delta)
    res = db.execute(
        stmt.values(quantity=Lot.quantity + delta).execution_options(
            synchronize_session=False))
    db.refresh(lot)
    if res.rowcount != 1:
        raise InsufficientStockError(f"lot {lot.lot_number}", lot.quantity,
                                     -delta)


def apply_variant_delta(db: Session, variant: ProductVariant,
                        delta: int) -> None:
    stmt = update(ProductVariant).where(ProductVariant.id == variant.id)
    if delta < 0:
        stmt = stmt.where(ProductVariant.stock_quantity >= -delta)
    res = db.execute(
        stmt.values(stock_quantity=ProductVariant.stock_quantity +
                    delta).execution_options(synchronize_session=False))
    db.refresh(variant)
    if res.rowcount != 1:
        raise InsufficientStockError(_variant_label(variant),
                                     variant.stock_quantity, -delta)


# ---------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------
@rollback_on_error
def record_movement(
    db: Session,
    *,
    variant_id: int,
    movement_type: MovementType,
    quantity: int,
    lot_id: Optional[int] = None,
    notes: Optional[str] = None,
    user: User,
) -> InventoryMovement:
    """
    Apply one stock movement and write its ledger row in the same
    transaction. Outbound movements that would take stock below zero
    are rejected and nothing is written.
    """
    if not isinstance(quantity, int) or quantity <= 0:
        raise field_error(422, "Invalid movement",
                          quantity="Quantity must be a positive whole number")

    variant = get_variant(db, variant_id)
    product = variant.product
    inbound = is_inbound(movement_type)

    if product.requires_lot and lot_id is None:
        raise field_error(400, f"{product.name} is lot-tracked",
                          lot_id="A lot is required for this product")
    if not product.requires_lot and lot_id is not None:
        raise field_error(400, f"{product.name} is not lot-tracked",
                          lot_id="This product does not use lots")

    delta = quantity if inbound else -quantity
    try:
        if lot_id is not None:
            lot = get_lot(db, lot_id, variant.id)
            if not inbound and not lot.is_active:
                raise HTTPException(
                    status_code=409,
                    detail=f"Lot {lot.lot_number} is inactive; no stock can leave it",
                )
            apply_lot_delta(db, lot, delta)
        else:
            apply_variant_delta(db, variant, delta)
    except InsufficientStockError as e:
        raise HTTPException(status_code=409, detail=str(e))

    mv = create_movement(
        db,
        user=user,
        variant_id=variant.id,
        lot_id=lot_id,
        movement_type=movement_type,
        quantity=quantity,
        notes=notes or "",
    )
    commit_or_500(db, "recording the stock movement")
    db.refresh(mv)
    return mv


def _lot_by_number(db: Session, variant_id: int,
                   lot_number: str) -> Optional[Lot]:
    return (db.query(Lot).filter(Lot.variant_id == variant_id,
                                 Lot.lot_number == lot_number).first())


@rollback_on_error
def register_lot_entry(db: Session, *, product_id: int, payload: LotEntryIn,
                       user: User) -> Lot:
    """New purchased lot of a lot-tracked product with a single variant."""
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if not product.requires_lot:
        raise HTTPException(
            status_code=400,
            detail=f"{product.name} is not lot-tracked; add stock to the variant instead",
        )
    variant = resolve_single_variant(product)

    if _lot_by_number(db, variant.id, payload.lot_number):
        raise field_error(
            409, "Lot already exists",
            lot_number=f"Lot {payload.lot_number} already exists for {product.name}")

    lot = Lot(
        variant_id=variant.id,
        lot_number=payload.lot_number,
        quantity=payload.quantity,
        entry_date=payload.entry_date or date.today(),
        expiry_date=payload.expiry_date,
        is_active=True,
    )
    db.add(lot)
    db.flush()

    create_movement(
        db,
        user=user,
        variant_id=variant.id,
        lot_id=lot.id,
        movement_type=MovementType.PURCHASE_IN,
        quantity=payload.quantity,
        notes=f"Lot entry {lot.lot_number}",
    )
    commit_or_500(db, "registering the lot")
    db.refresh(lot)
    logger.info("Lot %s of %s registered with %s units", lot.lot_number,
                product.name, lot.quantity)
    return lot


@rollback_on_error
def add_stock(db: Session, *, variant_id: int, payload: AddStockIn,
              user: User) -> InventoryMovement:
    """
    Purchase entry on a variant. Lot-tracked products top up the named
    lot (creating it when new), others the variant quantity.
    """
    variant = get_variant(db, variant_id)
    product = variant.product
    lot_id = None

    if product.requires_lot:
        if not payload.lot_number:
            raise field_error(400, f"{product.name} is lot-tracked",
                              lot_number="A lot number is required for this product")

        lot = _lot_by_number(db, variant.id, payload.lot_number)
        if lot:
            apply_lot_delta(db, lot, payload.quantity)
            if payload.entry_date:
                lot.entry_date = payload.entry_date
            if payload.expiry_date:
                lot.expiry_date = payload.expiry_date
        else:
            lot = Lot(
                variant_id=variant.id,
                lot_number=payload.lot_number,
                quantity=payload.quantity,
                entry_date=payload.entry_date or date.today(),
                expiry_date=payload.expiry_date,
                is_active=True,
            )
            db.add(lot)
            db.flush()
            logger.info("Lot %s of %s created", lot.lot_number, product.name)
        lot_id = lot.id
    else:
        if payload.lot_number:
            raise field_error(400, f"{product.name} is not lot-tracked",
                              lot_number="This product does not use lots")
        apply_variant_delta(db, variant, payload.quantity)

    mv = create_movement(
        db,
        user=user,
        variant_id=variant.id,
        lot_id=lot_id,
        movement_type=MovementType.PURCHASE_IN,
        quantity=payload.quantity,
        notes=payload.notes or "Stock entry",
    )
    commit_or_500(db, "adding stock")
    db.refresh(mv)
    return mv


@rollback_on_error
def edit_lot(
    db: Session,
    *,
    lot_id: int,
    variant_id: int,
    payload: LotUpdateIn,
    user: User,
) -> Tuple[Lot, Optional[InventoryMovement]]:
    """
    Manual lot correction. A quantity change is written as a single
    positive/negative adjustment of the difference; unchanged quantity
    writes no movement.
    """
    lot = get_lot(db, lot_id, variant_id)
    sent = payload.model_fields_set
    movement = None

    if payload.quantity is not None and payload.quantity != lot.quantity:
        old_qty = lot.quantity
        res = db.execute(
            update(Lot).where(Lot.id == lot.id, Lot.quantity == old_qty).values(
                quantity=payload.quantity).execution_options(
                    synchronize_session=False))
        db.refresh(lot)
        if res.rowcount != 1:
            raise HTTPException(
                status_code=409,
                detail=f"Lot {lot.lot_number} changed meanwhile "
                f"(now {lot.quantity}); reload and try again",
            )

        delta = payload.quantity - old_qty
        movement = create_movement(
            db,
            user=user,
            variant_id=lot.variant_id,
            lot_id=lot.id,
            movement_type=(MovementType.POSITIVE_ADJUSTMENT
                           if delta > 0 else MovementType.NEGATIVE_ADJUSTMENT),
            quantity=abs(delta),
            notes=f"Manual correction of lot {lot.lot_number}: {old_qty} -> {payload.quantity}",
        )

    if payload.lot_number and payload.lot_number != lot.lot_number:
        clash = _lot_by_number(db, lot.variant_id, payload.lot_number)
        if clash and clash.id != lot.id:
            raise field_error(
                409, "Lot already exists",
                lot_number=f"Lot {payload.lot_number} already exists for this variant")
        lot.lot_number = payload.lot_number

    if "entry_date" in sent and payload.entry_date is not None:
        lot.entry_date = payload.entry_date
    if "expiry_date" in sent:
        lot.expiry_date = payload.expiry_date

    commit_or_500(db, "editing the lot")
    db.refresh(lot)
    if movement is not None:
        db.refresh(movement)
    return lot, movement


def _set_lot_active(db: Session, lot_id: int, active: bool, user: User) -> Lot:
    lot = get_lot(db, lot_id)
    if lot.is_active != active:
        lot.is_active = active
        commit_or_500(db, "updating the lot")
        db.refresh(lot)
        logger.info("Lot %s %s by user %s", lot.lot_number,
                    "reactivated" if active else "deactivated", user.id)
    return lot


@rollback_on_error
def deactivate_lot(db: Session, *, lot_id: int, user: User) -> Lot:
    return _set_lot_active(db, lot_id, False, user)


@rollback_on_error
def reactivate_lot(db: Session, *, lot_id: int, user: User) -> Lot:
    return _set_lot_active(db, lot_id, True, user)


# ---------------------------------------------------------------------
# FEFO
# ---------------------------------------------------------------------
def allocate_lots_fefo(
    db: Session,
    variant_id: int,
    quantity: int,
    *,
    today: Optional[date] = None,
) -> List[Tuple[Lot, int]]:
    """
    FEFO allocation (First-Expiry-First-Out) for a variant.

    - Uses only ACTIVE lots with stock
    - Skips EXPIRED lots
    - Orders by expiry date (earliest first), NULL expiry at the end,
      then by entry date (oldest first)
    - Locks rows FOR UPDATE
    - Returns list of (lot, qty_to_use)
    - Raises InsufficientStockError if the lots cannot cover quantity
    """
    if quantity is None or quantity <= 0:
        raise ValueError("Quantity must be > 0")

    today = today or date.today()

    # MySQL-safe NULLS LAST
    nulls_last_expr = case((Lot.expiry_date.is_(None), 1), else_=0)

    lots = (db.query(Lot).filter(
        Lot.variant_id == variant_id,
        Lot.quantity > 0,
        Lot.is_active.is_(True),
        or_(Lot.expiry_date.is_(None), Lot.expiry_date >= today),
    ).order_by(
        nulls_last_expr.asc(),
        Lot.expiry_date.asc(),
        Lot.entry_date.asc(),
        Lot.id.asc(),
    ).with_for_update().all())

    remaining = quantity
    allocations: List[Tuple[Lot, int]] = []
    for lot in lots:
        if remaining <= 0:
            break
        use_qty = min(lot.quantity, remaining)
        allocations.append((lot, use_qty))
        remaining -= use_qty

    if remaining > 0:
        available = sum(lot.quantity for lot in lots)
        variant = db.get(ProductVariant, variant_id)
        label = _variant_label(variant) if variant else f"variant {variant_id}"
        raise InsufficientStockError(label, available, quantity)

    return allocations


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def variant_available_stock(db: Session, variant: ProductVariant) -> int:
    """Active lots only for lot-tracked products; the variant counter otherwise."""
    if variant.product.requires_lot:
        total = (db.query(func.coalesce(func.sum(Lot.quantity), 0)).filter(
            Lot.variant_id == variant.id,
            Lot.is_active.is_(True),
        ).scalar())
        return int(total or 0)
    return int(variant.stock_quantity or 0)


def product_stock_summary(db: Session, product: Product) -> Dict[str, Any]:
    variants = []
    total = 0
    for v in product.variants:
        available = variant_available_stock(db, v)
        total += available
        variants.append({
            "variant_id": v.id,
            "sku": v.sku,
            "available": available
        })

    next_expiry = None
    if product.requires_lot:
        next_expiry = (db.query(func.min(Lot.expiry_date)).join(
            ProductVariant, ProductVariant.id == Lot.variant_id).filter(
                ProductVariant.product_id == product.id,
                Lot.is_active.is_(True),
                Lot.quantity > 0,
            ).scalar())

    return {
        "product_id": product.id,
        "name": product.name,
        "requires_lot": product.requires_lot,
        "min_stock": product.min_stock,
        "total_stock": total,
        "below_min": total < (product.min_stock or 0),
        "next_expiry_date": next_expiry,
        "variants": variants,
    }


def list_movements(
    db: Session,
    *,
    product_id: Optional[int] = None,
    variant_id: Optional[int] = None,
    lot_id: Optional[int] = None,
    clinical_record_id: Optional[int] = None,
    limit: int = 200,
    offset: int = 0,
) -> List[InventoryMovement]:
    q = db.query(InventoryMovement)
    if product_id is not None:
        q = q.join(ProductVariant,
                   ProductVariant.id == InventoryMovement.variant_id).filter(
                       ProductVariant.product_id == product_id)
    if variant_id is not None:
        q = q.filter(InventoryMovement.variant_id == variant_id)
    if lot_id is not None:
        q = q.filter(InventoryMovement.lot_id == lot_id)
    if clinical_record_id is not None:
        q = q.filter(InventoryMovement.clinical_record_id == clinical_record_id)
    return (q.order_by(InventoryMovement.created_at.desc(),
                       InventoryMovement.id.desc()).offset(offset).limit(
                           min(limit, 1000)).all())
