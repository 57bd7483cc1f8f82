# vetclinic/services/clinical_consumption.py
from __future__ import annotations

import logging
from typing import Iterable, List

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from vetclinic.models.clinical import ClinicalRecord, ClinicalRecordItem
from vetclinic.models.inventory import (
    InventoryMovement,
    Lot,
    MovementType,
    Product,
    ProductVariant,
)
from vetclinic.models.user import User
from vetclinic.schemas.clinical import ConsumedItemIn
from vetclinic.services.inventory import (
    InsufficientStockError,
    allocate_lots_fefo,
    apply_lot_delta,
    apply_variant_delta,
    create_movement,
    resolve_single_variant,
)

logger = logging.getLogger(__name__)

# -------------------------
# All functions here flush only; the calling service commits.
# -------------------------


def consume_for_clinical_record(
    db: Session,
    *,
    product_id: int,
    quantity: int,
    record_id: int,
    user: User,
) -> List[InventoryMovement]:
    """
    Take `quantity` units of a product out of stock for a clinical record.
    Lot-tracked products are drawn FEFO across lots (one movement per lot).
    """
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    variant = resolve_single_variant(product)

    movements: List[InventoryMovement] = []
    try:
        if product.requires_lot:
            for lot, use_qty in allocate_lots_fefo(db, variant.id, quantity):
                apply_lot_delta(db, lot, -use_qty)
                movements.append(
                    create_movement(
                        db,
                        user=user,
                        variant_id=variant.id,
                        lot_id=lot.id,
                        movement_type=MovementType.INTERNAL_USE_OUT,
                        quantity=use_qty,
                        clinical_record_id=record_id,
                        notes=f"Used in clinical record {record_id}",
                    ))
        else:
            apply_variant_delta(db, variant, -quantity)
            movements.append(
                create_movement(
                    db,
                    user=user,
                    variant_id=variant.id,
                    movement_type=MovementType.INTERNAL_USE_OUT,
                    quantity=quantity,
                    clinical_record_id=record_id,
                    notes=f"Used in clinical record {record_id}",
                ))
    except InsufficientStockError as e:
        raise HTTPException(status_code=409, detail=str(e))

    db.flush()
    return movements


def reverse_consumption_for_clinical_record(
    db: Session,
    *,
    record_id: int,
    user: User,
) -> List[InventoryMovement]:
    """
    Put back everything a clinical record consumed.

    Each internal_use_out movement of the record that has no compensating
    row yet gets a positive_adjustment pointing at it through
    reverses_movement_id, so calling this twice restores nothing twice.
    """
    compensated = select(InventoryMovement.reverses_movement_id).where(
        InventoryMovement.reverses_movement_id.isnot(None))

    originals = (db.query(InventoryMovement).filter(
        InventoryMovement.clinical_record_id == record_id,
        InventoryMovement.movement_type == MovementType.INTERNAL_USE_OUT,
        InventoryMovement.id.notin_(compensated),
    ).order_by(InventoryMovement.id.asc()).all())

    reversals: List[InventoryMovement] = []
    for mv in originals:
        if mv.lot_id is not None:
            apply_lot_delta(db, db.get(Lot, mv.lot_id), mv.quantity)
        else:
            apply_variant_delta(db, db.get(ProductVariant, mv.variant_id),
                                mv.quantity)

        reversals.append(
            create_movement(
                db,
                user=user,
                variant_id=mv.variant_id,
                lot_id=mv.lot_id,
                movement_type=MovementType.POSITIVE_ADJUSTMENT,
                quantity=mv.quantity,
                clinical_record_id=record_id,
                reverses_movement_id=mv.id,
                notes=f"Reversal of movement {mv.id} (clinical record {record_id})",
            ))

    db.flush()
    if reversals:
        logger.info("Clinical record %s: %s consumption movement(s) reversed",
                    record_id, len(reversals))
    return reversals


def replace_clinical_record_consumption(
    db: Session,
    *,
    record: ClinicalRecord,
    items: Iterable[ConsumedItemIn],
    user: User,
) -> List[InventoryMovement]:
    """
    Reverse the record's previous consumption, then apply the new item
    list. Both phases share the caller's transaction: if any item cannot
    be covered the whole edit rolls back and stock stays as it was.
    """
    reverse_consumption_for_clinical_record(db, record_id=record.id, user=user)

    items = list(items)
    record.items.clear()
    db.flush()
    record.items.extend(
        ClinicalRecordItem(product_id=it.product_id,
                           quantity=it.quantity,
                           notes=it.notes) for it in items)

    applied: List[InventoryMovement] = []
    for it in items:
        applied.extend(
            consume_for_clinical_record(
                db,
                product_id=it.product_id,
                quantity=it.quantity,
                record_id=record.id,
                user=user,
            ))
    return applied
