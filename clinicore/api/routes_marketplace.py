from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinicore.api.deps import current_user, get_db
from clinicore.api.response import ok, ok_list
from clinicore.core.rbac import require_roles
from clinicore.models.marketplace import ProductStatus
from clinicore.models.user import User, UserRole
from clinicore.schemas.marketplace import (
    ProductCreate,
    ProductOut,
    ProductUpdate,
    SupplierCreate,
    SupplierOut,
    SupplierUpdate,
)
from clinicore.services import marketplace as svc

suppliers_router = APIRouter()
products_router = APIRouter()

# catalogue writes are an admin concern; reads are open to staff
CATALOGUE_ADMINS = [UserRole.CLINIC_ADMIN]


# ---------------- Suppliers ----------------
@suppliers_router.get("")
def list_suppliers(db: Session = Depends(get_db), user: User = Depends(current_user)):
    rows = svc.list_suppliers(db, tenant_id=user.tenant_id)
    return ok_list(rows, SupplierOut)


@suppliers_router.post("")
def create_supplier(
        payload: SupplierCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, CATALOGUE_ADMINS)
    sup = svc.create_supplier(db, tenant_id=user.tenant_id, payload=payload)
    return ok(SupplierOut.model_validate(sup), status_code=201)


@suppliers_router.get("/{supplier_id}")
def get_supplier(supplier_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return ok(SupplierOut.model_validate(svc.get_supplier(db, supplier_id, tenant_id=user.tenant_id)))


@suppliers_router.patch("/{supplier_id}")
def update_supplier(
        supplier_id: int,
        payload: SupplierUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, CATALOGUE_ADMINS)
    sup = svc.update_supplier(db, supplier_id, tenant_id=user.tenant_id, payload=payload)
    return ok(SupplierOut.model_validate(sup))


# ---------------- Products ----------------
@products_router.get("")
def list_products(
        supplier_id: Optional[int] = Query(None),
        status: Optional[ProductStatus] = Query(None),
        q: Optional[str] = Query(None, description="search name / sku"),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    rows = svc.list_products(db, tenant_id=user.tenant_id, supplier_id=supplier_id, status=status, q=q)
    return ok_list(rows, ProductOut)


@products_router.post("")
def create_product(
        payload: ProductCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, CATALOGUE_ADMINS)
    p = svc.create_product(db, tenant_id=user.tenant_id, payload=payload)
    return ok(ProductOut.model_validate(p), status_code=201)


@products_router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return ok(ProductOut.model_validate(svc.get_product(db, product_id, tenant_id=user.tenant_id)))


@products_router.patch("/{product_id}")
def update_product(
        product_id: int,
        payload: ProductUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, CATALOGUE_ADMINS)
    p = svc.update_product(db, product_id, tenant_id=user.tenant_id, payload=payload)
    return ok(ProductOut.model_validate(p))
