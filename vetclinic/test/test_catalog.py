from decimal import Decimal

import pytest
from fastapi import HTTPException

from vetclinic.models import Product, ProductVariant
from vetclinic.schemas.inventory import (
    AddStockIn,
    ProductCreate,
    ProductUpdate,
    VariantIn,
    VariantUpdate,
)
from vetclinic.services import catalog_service as catalog
from vetclinic.services import inventory as inv


def test_product_gets_default_variant(db, staff):
    p = catalog.create_product(db, ProductCreate(name="Shampoo", tax_rate="7"), user=staff)
    assert len(p.variants) == 1
    assert p.variants[0].stock_quantity == 0
    assert p.tax_rate == Decimal("7")


def test_product_with_variants_and_unique_sku(db, staff):
    p = catalog.create_product(
        db,
        ProductCreate(name="Harness", variants=[
            VariantIn(sku="H-S", attributes={"size": "S"}, price="12.50"),
            VariantIn(sku="H-M", attributes={"size": "M"}, price="14.00"),
        ]),
        user=staff,
    )
    assert [v.sku for v in p.variants] == ["H-S", "H-M"]

    with pytest.raises(HTTPException) as exc:
        catalog.add_variant(db, p.id, VariantIn(sku="H-S"), user=staff)
    assert exc.value.status_code == 409
    assert "sku" in exc.value.detail["errors"]


def test_duplicate_name_rejected(db, staff, food):
    with pytest.raises(HTTPException) as exc:
        catalog.create_product(db, ProductCreate(name=food.name), user=staff)
    assert exc.value.status_code == 409
    assert db.query(Product).count() == 1


def test_tax_rate_outside_set_rejected():
    with pytest.raises(ValueError):
        ProductCreate(name="X", tax_rate="21")


def test_update_product_partial(db, staff, food):
    p = catalog.update_product(db, food.id, ProductUpdate(min_stock=3, is_store_visible=True),
                               user=staff)
    assert p.min_stock == 3
    assert p.is_store_visible is True
    assert p.name == "Dog food 5kg"


def test_lot_tracking_locked_while_stock_held(db, staff, food):
    inv.add_stock(db, variant_id=food.variants[0].id, payload=AddStockIn(quantity=1), user=staff)
    with pytest.raises(HTTPException) as exc:
        catalog.update_product(db, food.id, ProductUpdate(requires_lot=True), user=staff)
    assert exc.value.status_code == 409


def test_delete_blocked_by_movements(db, staff, food, vaccine):
    inv.add_stock(db, variant_id=food.variants[0].id, payload=AddStockIn(quantity=1), user=staff)
    with pytest.raises(HTTPException) as exc:
        catalog.delete_product(db, food.id, user=staff)
    assert exc.value.status_code == 409

    catalog.delete_product(db, vaccine.id, user=staff)
    assert db.get(Product, vaccine.id) is None
    assert db.query(ProductVariant).filter_by(product_id=vaccine.id).count() == 0


def test_update_variant(db, staff, collar):
    v = collar.variants[0]
    v = catalog.update_variant(db, v.id, VariantUpdate(price="9.90", is_active=False), user=staff)
    assert v.price == Decimal("9.90")
    assert v.is_active is False

    with pytest.raises(HTTPException) as exc:
        catalog.update_variant(db, v.id, VariantUpdate(sku="COL-L"), user=staff)
    assert exc.value.status_code == 409
