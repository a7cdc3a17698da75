# FILE: clinicore/services/marketplace.py
from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinicore.models.marketplace import Product, ProductStatus, Supplier
from clinicore.schemas.marketplace import (
    ProductCreate,
    ProductUpdate,
    SupplierCreate,
    SupplierUpdate,
)
from clinicore.utils.money import q2


# ============================================================
# Suppliers
# ============================================================
def list_suppliers(db: Session, *, tenant_id: int) -> List[Supplier]:
    return (db.query(Supplier).filter(Supplier.tenant_id == tenant_id).order_by(Supplier.name.asc()).all())


def get_supplier(db: Session, supplier_id: int, *, tenant_id: int) -> Supplier:
    sup = (db.query(Supplier).filter(
        Supplier.id == supplier_id,
        Supplier.tenant_id == tenant_id,
    ).first())
    if not sup:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return sup


def create_supplier(db: Session, *, tenant_id: int, payload: SupplierCreate) -> Supplier:
    exists = (db.query(Supplier).filter(
        Supplier.tenant_id == tenant_id,
        Supplier.code == payload.code,
    ).first())
    if exists:
        raise HTTPException(status_code=409, detail="Supplier code already exists")
    sup = Supplier(tenant_id=tenant_id, **payload.model_dump())
    db.add(sup)
    db.commit()
    db.refresh(sup)
    return sup


def update_supplier(db: Session, supplier_id: int, *, tenant_id: int, payload: SupplierUpdate) -> Supplier:
    sup = get_supplier(db, supplier_id, tenant_id=tenant_id)
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(sup, k, v)
    db.commit()
    db.refresh(sup)
    return sup


# ============================================================
# Products
# ============================================================
def list_products(
    db: Session,
    *,
    tenant_id: int,
    supplier_id: Optional[int] = None,
    status: Optional[ProductStatus] = None,
    q: Optional[str] = None,
) -> List[Product]:
    query = db.query(Product).filter(Product.tenant_id == tenant_id)
    if supplier_id:
        query = query.filter(Product.supplier_id == supplier_id)
    if status:
        query = query.filter(Product.status == status)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    return query.order_by(Product.name.asc()).all()


def get_product(db: Session, product_id: int, *, tenant_id: int) -> Product:
    p = (db.query(Product).filter(
        Product.id == product_id,
        Product.tenant_id == tenant_id,
    ).first())
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return p


def create_product(db: Session, *, tenant_id: int, payload: ProductCreate) -> Product:
    get_supplier(db, payload.supplier_id, tenant_id=tenant_id)
    exists = (db.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.sku == payload.sku,
    ).first())
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    data = payload.model_dump()
    data["cost_price"] = q2(data["cost_price"])
    data["selling_price"] = q2(data["selling_price"])
    p = Product(tenant_id=tenant_id, **data)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def update_product(db: Session, product_id: int, *, tenant_id: int, payload: ProductUpdate) -> Product:
    p = get_product(db, product_id, tenant_id=tenant_id)
    for k, v in payload.model_dump(exclude_unset=True).items():
        if k in ("cost_price", "selling_price") and v is not None:
            v = q2(v)
        setattr(p, k, v)
    db.commit()
    db.refresh(p)
    return p
