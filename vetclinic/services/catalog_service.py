# vetclinic/services/catalog_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session, selectinload

from vetclinic.models.inventory import (
    InventoryMovement,
    Lot,
    Product,
    ProductVariant,
)
from vetclinic.models.user import User
from vetclinic.schemas.inventory import (
    ProductCreate,
    ProductUpdate,
    VariantIn,
    VariantUpdate,
)
from vetclinic.services.tx import commit_or_500, field_error, rollback_on_error

logger = logging.getLogger(__name__)


def get_product(db: Session, product_id: int) -> Product:
    p = (db.query(Product).options(
        selectinload(Product.variants).selectinload(ProductVariant.lots)).filter(
            Product.id == product_id).first())
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return p


def list_products(db: Session,
                  *,
                  q: Optional[str] = None,
                  limit: int = 200) -> List[Product]:
    query = db.query(Product).options(selectinload(Product.variants))
    if q:
        query = query.filter(Product.name.ilike(f"%{q.strip()}%"))
    return query.order_by(Product.name.asc()).limit(min(limit, 1000)).all()


def _name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(Product.id).filter(Product.name == name)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return db.query(q.exists()).scalar()


def _sku_taken(db: Session, sku: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(ProductVariant.id).filter(ProductVariant.sku == sku)
    if exclude_id is not None:
        q = q.filter(ProductVariant.id != exclude_id)
    return db.query(q.exists()).scalar()


def _new_variant(payload: VariantIn) -> ProductVariant:
    # stock always starts at 0, only the ledger moves it
    return ProductVariant(
        sku=payload.sku,
        attributes=payload.attributes,
        price=payload.price,
        stock_quantity=0,
        is_active=payload.is_active,
    )


@rollback_on_error
def create_product(db: Session, payload: ProductCreate, *, user: User) -> Product:
    name = payload.name.strip()
    if _name_taken(db, name):
        raise field_error(409, "Product already exists",
                          name=f"A product named {name} already exists")

    variants_in = payload.variants or [VariantIn()]
    seen = set()
    for i, v in enumerate(variants_in):
        if not v.sku:
            continue
        if v.sku in seen or _sku_taken(db, v.sku):
            raise field_error(409, "SKU already in use",
                              **{f"variants.{i}.sku": f"SKU {v.sku} is already in use"})
        seen.add(v.sku)

    product = Product(
        name=name,
        description=payload.description,
        unit=payload.unit,
        requires_lot=payload.requires_lot,
        tax_rate=payload.tax_rate,
        min_stock=payload.min_stock,
        is_public=payload.is_public,
        is_store_visible=payload.is_store_visible,
        image_urls=list(payload.image_urls or []),
        internal_notes=payload.internal_notes,
    )
    product.variants = [_new_variant(v) for v in variants_in]
    db.add(product)

    commit_or_500(db, "creating the product")
    db.refresh(product)
    logger.info("Product %s created by user %s", product.name, user.id)
    return product


def _holds_stock(db: Session, product: Product) -> bool:
    if any((v.stock_quantity or 0) > 0 for v in product.variants):
        return True
    return db.query(
        db.query(Lot.id).join(ProductVariant, ProductVariant.id == Lot.variant_id).filter(
            ProductVariant.product_id == product.id,
            Lot.quantity > 0,
        ).exists()).scalar()


@rollback_on_error
def update_product(db: Session, product_id: int, payload: ProductUpdate, *,
                   user: User) -> Product:
    product = get_product(db, product_id)
    data = payload.model_dump(exclude_unset=True)

    if "name" in data and data["name"] is not None:
        data["name"] = data["name"].strip()
        if _name_taken(db, data["name"], exclude_id=product.id):
            raise field_error(409, "Product already exists",
                              name=f"A product named {data['name']} already exists")

    if ("requires_lot" in data and data["requires_lot"] is not None
            and data["requires_lot"] != product.requires_lot
            and _holds_stock(db, product)):
        raise HTTPException(
            status_code=409,
            detail=f"{product.name} holds stock; lot tracking cannot be changed",
        )

    for field, value in data.items():
        if value is None and field not in ("description", "internal_notes"):
            continue
        setattr(product, field, value)

    commit_or_500(db, "updating the product")
    db.refresh(product)
    return product


@rollback_on_error
def delete_product(db: Session, product_id: int, *, user: User) -> None:
    product = get_product(db, product_id)
    has_history = db.query(
        db.query(InventoryMovement.id).join(
            ProductVariant, ProductVariant.id == InventoryMovement.variant_id).filter(
                ProductVariant.product_id == product.id).exists()).scalar()
    if has_history:
        raise HTTPException(
            status_code=409,
            detail=f"{product.name} has stock movements; hide it instead of deleting",
        )
    db.delete(product)
    commit_or_500(db, "deleting the product")
    logger.info("Product %s deleted by user %s", product_id, user.id)


@rollback_on_error
def add_variant(db: Session, product_id: int, payload: VariantIn, *,
                user: User) -> ProductVariant:
    product = get_product(db, product_id)
    if payload.sku and _sku_taken(db, payload.sku):
        raise field_error(409, "SKU already in use",
                          sku=f"SKU {payload.sku} is already in use")
    variant = _new_variant(payload)
    variant.product_id = product.id
    db.add(variant)
    commit_or_500(db, "adding the variant")
    db.refresh(variant)
    return variant


@rollback_on_error
def update_variant(db: Session, variant_id: int, payload: VariantUpdate, *,
                   user: User) -> ProductVariant:
    variant = db.get(ProductVariant, variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")

    data = payload.model_dump(exclude_unset=True)
    sku = data.get("sku")
    if sku and sku != variant.sku and _sku_taken(db, sku, exclude_id=variant.id):
        raise field_error(409, "SKU already in use",
                          sku=f"SKU {sku} is already in use")

    for field, value in data.items():
        if value is None and field not in ("sku", "attributes"):
            continue
        setattr(variant, field, value)

    commit_or_500(db, "updating the variant")
    db.refresh(variant)
    return variant
