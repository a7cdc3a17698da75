# FILE: clinicore/api/routes_inventory.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinicore.api.deps import current_user, get_db
from clinicore.api.response import ok, ok_list
from clinicore.core.rbac import require_roles
from clinicore.models.inventory import InventoryStatus, TransactionType
from clinicore.models.user import User, UserRole
from clinicore.schemas.inventory import (
    InventoryAdjustIn,
    InventoryCreate,
    InventoryOut,
    InventoryTransactionIn,
    InventoryTransactionOut,
    InventoryUpdate,
)
from clinicore.services import inventory as svc

router = APIRouter()

STOCK_ROLES = [UserRole.CLINIC_ADMIN, UserRole.FINANCE_ADMIN, UserRole.STAFF]
STOCK_ADMINS = [UserRole.CLINIC_ADMIN]


@router.get("")
def list_inventory(
        clinic_id: Optional[int] = Query(None),
        status: Optional[InventoryStatus] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    return ok_list(svc.find_all(db, tenant_id=user.tenant_id, clinic_id=clinic_id, status=status), InventoryOut)


@router.post("")
def create_inventory(
        payload: InventoryCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ADMINS)
    inv = svc.create_inventory(db, tenant_id=user.tenant_id, payload=payload, user=user)
    return ok(InventoryOut.model_validate(inv), status_code=201)


# ---------------- Ledger ----------------
@router.post("/transactions")
def add_transaction(
        payload: InventoryTransactionIn,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    txn = svc.add_transaction(db, tenant_id=user.tenant_id, payload=payload, user=user)
    return ok(InventoryTransactionOut.model_validate(txn), status_code=201)


@router.get("/transactions")
def list_transactions(
        product_id: Optional[int] = Query(None),
        clinic_id: Optional[int] = Query(None),
        inventory_id: Optional[int] = Query(None),
        transaction_type: Optional[TransactionType] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    rows = svc.list_transactions(
        db,
        tenant_id=user.tenant_id,
        product_id=product_id,
        clinic_id=clinic_id,
        inventory_id=inventory_id,
        transaction_type=transaction_type,
    )
    return ok_list(rows, InventoryTransactionOut)


# ---------------- Alerts / reports ----------------
@router.get("/low-stock")
def low_stock(
        clinic_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    return ok_list(svc.low_stock_items(db, tenant_id=user.tenant_id, clinic_id=clinic_id), InventoryOut)


@router.get("/expired")
def expired(
        clinic_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    return ok_list(svc.expired_items(db, tenant_id=user.tenant_id, clinic_id=clinic_id), InventoryOut)


@router.get("/expiring-soon")
def expiring_soon(
        days: Optional[int] = Query(None, ge=0, le=3650),
        clinic_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    return ok_list(svc.expiring_soon(db, tenant_id=user.tenant_id, days=days, clinic_id=clinic_id), InventoryOut)


@router.get("/stats")
def stats(
        clinic_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    return ok(svc.inventory_stats(db, tenant_id=user.tenant_id, clinic_id=clinic_id))


# ---------------- Single row ----------------
@router.get("/{inventory_id}")
def get_inventory(inventory_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, STOCK_ROLES)
    return ok(InventoryOut.model_validate(svc.find_one(db, inventory_id, tenant_id=user.tenant_id)))


@router.patch("/{inventory_id}")
def update_inventory(
        inventory_id: int,
        payload: InventoryUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ADMINS)
    inv = svc.update_inventory(db, inventory_id, tenant_id=user.tenant_id, payload=payload)
    return ok(InventoryOut.model_validate(inv))


@router.delete("/{inventory_id}")
def remove_inventory(inventory_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, STOCK_ADMINS)
    svc.remove_inventory(db, inventory_id, tenant_id=user.tenant_id)
    return ok({"message": "Inventory deleted"})


@router.post("/{inventory_id}/adjust")
def adjust_inventory(
        inventory_id: int,
        payload: InventoryAdjustIn,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, STOCK_ROLES)
    txn = svc.adjust_inventory(
        db,
        inventory_id,
        tenant_id=user.tenant_id,
        adjustment=payload.adjustment,
        reason=payload.reason,
        user=user,
    )
    return ok(InventoryTransactionOut.model_validate(txn), status_code=201)
