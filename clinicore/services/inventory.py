# FILE: clinicore/services/inventory.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from clinicore.core.config import settings
from clinicore.models.inventory import (
    Inventory,
    InventoryStatus,
    InventoryTransaction,
    TransactionType,
)
from clinicore.models.marketplace import Product
from clinicore.models.user import User
from clinicore.schemas.inventory import (
    InventoryCreate,
    InventoryStatsOut,
    InventoryTransactionIn,
    InventoryUpdate,
)
from clinicore.utils.money import d, q2

logger = logging.getLogger(__name__)


# ============================================================
# Stock math (pure, no DB)
# ============================================================
@dataclass(frozen=True)
class StockMovement:
    new_stock: int
    average_cost: Optional[Decimal]
    last_cost: Optional[Decimal]


def weighted_average_cost(
    old_average: Optional[Decimal],
    old_stock: int,
    unit_cost: Decimal,
    quantity: int,
) -> Decimal:
    """
    Average cost after receiving `quantity` units at `unit_cost`.
    Uses the stock held BEFORE the receipt.
    """
    if quantity <= 0:
        raise ValueError("Average cost only moves on stock in")
    held = max(int(old_stock or 0), 0)
    new_stock = held + quantity
    total_value = d(old_average) * held + d(unit_cost) * quantity
    return q2(total_value / new_stock)


def apply_stock_delta(
    *,
    current_stock: int,
    quantity: int,
    average_cost: Optional[Decimal],
    last_cost: Optional[Decimal],
    unit_cost: Optional[Decimal] = None,
) -> StockMovement:
    """
    Stock in (quantity > 0) or out (quantity < 0).
    Raises ValueError when the movement would take stock below zero.
    """
    if quantity == 0:
        raise ValueError("Quantity must not be 0")

    current = int(current_stock or 0)
    new_stock = current + quantity
    if new_stock < 0:
        raise ValueError(
            f"Insufficient stock for this transaction (on hand {current}, requested {-quantity})")

    new_average = average_cost
    new_last = last_cost
    if unit_cost is not None:
        new_last = q2(unit_cost)
        if quantity > 0:
            new_average = weighted_average_cost(average_cost, current, unit_cost, quantity)

    return StockMovement(new_stock=new_stock, average_cost=new_average, last_cost=new_last)


def derive_status(
    *,
    current_stock: int,
    minimum_stock: int,
    expiry_date: Optional[date],
    today: Optional[date] = None,
) -> InventoryStatus:
    """
    expired > out_of_stock > low_stock > active
    """
    today = today or date.today()
    if expiry_date is not None and expiry_date < today:
        return InventoryStatus.EXPIRED
    if current_stock <= 0:
        return InventoryStatus.OUT_OF_STOCK
    if current_stock <= (minimum_stock or 0):
        return InventoryStatus.LOW_STOCK
    return InventoryStatus.ACTIVE


def refresh_status(inv: Inventory, today: Optional[date] = None) -> InventoryStatus:
    inv.status = derive_status(
        current_stock=inv.current_stock or 0,
        minimum_stock=inv.minimum_stock or 0,
        expiry_date=inv.expiry_date,
        today=today,
    )
    return inv.status


# ============================================================
# Queries
# ============================================================
def _base_query(db: Session, tenant_id: int, clinic_id: Optional[int] = None):
    q = (db.query(Inventory).options(joinedload(Inventory.product)).filter(
        Inventory.tenant_id == tenant_id,
        Inventory.deleted_at.is_(None),
    ))
    if clinic_id:
        q = q.filter(Inventory.clinic_id == clinic_id)
    return q


def _resolve_clinic(user: User, clinic_id: Optional[int]) -> int:
    cid = clinic_id or getattr(user, "clinic_id", None)
    if not cid:
        raise HTTPException(status_code=400, detail="clinic_id is required")
    return int(cid)


def find_all(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    status: Optional[InventoryStatus] = None,
    today: Optional[date] = None,
) -> List[Inventory]:
    """Status is re-derived on read: a row can pass its expiry date with no write."""
    today = today or date.today()
    rows = _base_query(db, tenant_id, clinic_id).all()
    for inv in rows:
        refresh_status(inv, today)
    if status:
        rows = [inv for inv in rows if inv.status == status]
    rows.sort(key=lambda inv: (inv.status.value, inv.current_stock or 0, inv.id))
    return rows


def find_one(db: Session, inventory_id: int, *, tenant_id: int) -> Inventory:
    inv = _base_query(db, tenant_id).filter(Inventory.id == inventory_id).first()
    if not inv:
        raise HTTPException(status_code=404, detail=f"Inventory with ID {inventory_id} not found")
    refresh_status(inv)
    return inv


def _find_for_product(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: int,
    product_id: int,
    lock: bool = False,
) -> Optional[Inventory]:
    q = db.query(Inventory).filter(
        Inventory.tenant_id == tenant_id,
        Inventory.clinic_id == clinic_id,
        Inventory.product_id == product_id,
        Inventory.deleted_at.is_(None),
    )
    if lock:
        q = q.with_for_update()
    return q.first()


# ============================================================
# Create / update / remove
# ============================================================
def create_inventory(
    db: Session,
    *,
    tenant_id: int,
    payload: InventoryCreate,
    user: User,
) -> Inventory:
    clinic_id = _resolve_clinic(user, payload.clinic_id)

    product = (db.query(Product).filter(
        Product.id == payload.product_id,
        Product.tenant_id == tenant_id,
    ).first())
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    if _find_for_product(db, tenant_id=tenant_id, clinic_id=clinic_id, product_id=product.id):
        raise HTTPException(
            status_code=409,
            detail="Inventory already exists for this product in this clinic")

    opening_cost = q2(payload.average_cost if payload.average_cost is not None else product.cost_price)

    inv = Inventory(
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        product_id=product.id,
        current_stock=payload.current_stock,
        minimum_stock=payload.minimum_stock,
        maximum_stock=payload.maximum_stock,
        reserved_stock=0,
        location=payload.location,
        batch_number=payload.batch_number,
        expiry_date=payload.expiry_date,
        average_cost=opening_cost,
        last_cost=opening_cost,
    )
    refresh_status(inv)
    db.add(inv)
    db.flush()

    # opening balance goes through the ledger too
    if payload.current_stock > 0:
        db.add(
            InventoryTransaction(
                tenant_id=tenant_id,
                clinic_id=clinic_id,
                product_id=product.id,
                inventory_id=inv.id,
                transaction_type=TransactionType.ADJUSTMENT,
                quantity=payload.current_stock,
                unit_cost=opening_cost,
                total_cost=q2(opening_cost * payload.current_stock),
                balance_after=payload.current_stock,
                reference_type="opening_balance",
                notes="Opening stock",
                created_by=getattr(user, "id", None),
            ))

    db.commit()
    db.refresh(inv)
    logger.info("inventory created id=%s tenant=%s clinic=%s product=%s stock=%s",
                inv.id, tenant_id, clinic_id, product.id, inv.current_stock)
    return inv


def update_inventory(
    db: Session,
    inventory_id: int,
    *,
    tenant_id: int,
    payload: InventoryUpdate,
) -> Inventory:
    inv = find_one(db, inventory_id, tenant_id=tenant_id)

    data = payload.model_dump(exclude_unset=True)
    for k, v in data.items():
        setattr(inv, k, v)

    if (inv.maximum_stock or 0) < (inv.minimum_stock or 0):
        raise HTTPException(status_code=400, detail="maximum_stock must be >= minimum_stock")
    if (inv.reserved_stock or 0) > (inv.current_stock or 0):
        raise HTTPException(status_code=400, detail="reserved_stock cannot exceed current stock")
    if "average_cost" in data and inv.average_cost is not None:
        inv.average_cost = q2(inv.average_cost)

    refresh_status(inv)
    db.commit()
    db.refresh(inv)
    return inv


def remove_inventory(db: Session, inventory_id: int, *, tenant_id: int) -> None:
    inv = find_one(db, inventory_id, tenant_id=tenant_id)
    if (inv.current_stock or 0) > 0:
        raise HTTPException(status_code=400, detail="Cannot delete inventory with stock remaining")
    inv.deleted_at = datetime.utcnow()
    db.commit()
    logger.info("inventory soft-deleted id=%s tenant=%s", inv.id, tenant_id)


# ============================================================
# Ledger
# ============================================================
def _post_movement(
    db: Session,
    inv: Inventory,
    *,
    transaction_type: TransactionType,
    quantity: int,
    user: User,
    unit_cost: Optional[Decimal] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> InventoryTransaction:
    try:
        mv = apply_stock_delta(
            current_stock=inv.current_stock,
            quantity=quantity,
            average_cost=inv.average_cost,
            last_cost=inv.last_cost,
            unit_cost=unit_cost,
        )
    except ValueError as e:
        db.rollback()
        logger.warning("stock movement refused inventory=%s qty=%s: %s", inv.id, quantity, e)
        raise HTTPException(status_code=400, detail=str(e))

    inv.current_stock = mv.new_stock
    inv.average_cost = mv.average_cost
    inv.last_cost = mv.last_cost
    if (inv.reserved_stock or 0) > mv.new_stock:
        inv.reserved_stock = mv.new_stock
    refresh_status(inv)

    txn = InventoryTransaction(
        tenant_id=inv.tenant_id,
        clinic_id=inv.clinic_id,
        product_id=inv.product_id,
        inventory_id=inv.id,
        transaction_type=transaction_type,
        quantity=quantity,
        unit_cost=q2(unit_cost) if unit_cost is not None else None,
        total_cost=q2(d(unit_cost) * quantity) if unit_cost is not None else None,
        balance_after=mv.new_stock,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=getattr(user, "id", None),
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)

    logger.info(
        "stock %s inventory=%s qty=%+d balance=%s avg_cost=%s status=%s",
        transaction_type.value, inv.id, quantity, mv.new_stock, inv.average_cost, inv.status.value)
    return txn


def add_transaction(
    db: Session,
    *,
    tenant_id: int,
    payload: InventoryTransactionIn,
    user: User,
) -> InventoryTransaction:
    clinic_id = _resolve_clinic(user, payload.clinic_id)

    inv = _find_for_product(
        db,
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        product_id=payload.product_id,
        lock=True,
    )
    if not inv:
        raise HTTPException(status_code=404,
                            detail="Inventory not found for this product in this clinic")

    return _post_movement(
        db,
        inv,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        user=user,
        unit_cost=payload.unit_cost,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )


def adjust_inventory(
    db: Session,
    inventory_id: int,
    *,
    tenant_id: int,
    adjustment: int,
    reason: str,
    user: User,
) -> InventoryTransaction:
    inv = find_one(db, inventory_id, tenant_id=tenant_id)
    inv = _find_for_product(
        db,
        tenant_id=tenant_id,
        clinic_id=inv.clinic_id,
        product_id=inv.product_id,
        lock=True,
    )
    return _post_movement(
        db,
        inv,
        transaction_type=TransactionType.ADJUSTMENT,
        quantity=adjustment,
        user=user,
        reference_type="manual",
        notes=reason,
    )


# ============================================================
# Alerts / reports
# ============================================================
def low_stock_items(db: Session, *, tenant_id: int, clinic_id: Optional[int] = None) -> List[Inventory]:
    return (_base_query(db, tenant_id, clinic_id).filter(
        Inventory.current_stock <= Inventory.minimum_stock).order_by(
            Inventory.current_stock.asc(), Inventory.id.asc()).all())


def expired_items(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Inventory]:
    today = today or date.today()
    return (_base_query(db, tenant_id, clinic_id).filter(
        Inventory.expiry_date.isnot(None),
        Inventory.expiry_date < today,
    ).order_by(Inventory.expiry_date.asc(), Inventory.id.asc()).all())


def expiring_soon(
    db: Session,
    *,
    tenant_id: int,
    days: Optional[int] = None,
    clinic_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Inventory]:
    today = today or date.today()
    window = settings.INVENTORY_EXPIRING_SOON_DAYS if days is None else days
    until = today + timedelta(days=window)
    return (_base_query(db, tenant_id, clinic_id).filter(
        Inventory.expiry_date.isnot(None),
        Inventory.expiry_date >= today,
        Inventory.expiry_date <= until,
    ).order_by(Inventory.expiry_date.asc(), Inventory.id.asc()).all())


def list_transactions(
    db: Session,
    *,
    tenant_id: int,
    product_id: Optional[int] = None,
    clinic_id: Optional[int] = None,
    inventory_id: Optional[int] = None,
    transaction_type: Optional[TransactionType] = None,
) -> List[InventoryTransaction]:
    q = db.query(InventoryTransaction).filter(InventoryTransaction.tenant_id == tenant_id)
    if product_id:
        q = q.filter(InventoryTransaction.product_id == product_id)
    if clinic_id:
        q = q.filter(InventoryTransaction.clinic_id == clinic_id)
    if inventory_id:
        q = q.filter(InventoryTransaction.inventory_id == inventory_id)
    if transaction_type:
        q = q.filter(InventoryTransaction.transaction_type == transaction_type)
    return q.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc()).all()


def inventory_stats(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    today: Optional[date] = None,
) -> InventoryStatsOut:
    today = today or date.today()

    q = db.query(Inventory).filter(
        Inventory.tenant_id == tenant_id,
        Inventory.deleted_at.is_(None),
    )
    if clinic_id:
        q = q.filter(Inventory.clinic_id == clinic_id)

    total_items = q.count()
    low = q.filter(Inventory.current_stock <= Inventory.minimum_stock).count()
    out = q.filter(Inventory.current_stock == 0).count()
    expired = q.filter(Inventory.expiry_date.isnot(None), Inventory.expiry_date < today).count()

    value = q.with_entities(
        func.coalesce(func.sum(Inventory.current_stock * func.coalesce(Inventory.average_cost, 0)), 0)
    ).scalar()

    return InventoryStatsOut(
        total_items=total_items,
        low_stock_items=low,
        out_of_stock_items=out,
        expired_items=expired,
        total_value=q2(value),
    )
