# FILE: clinicore/models/inventory.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Text, Enum,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from clinicore.db.base import Base

Money = Numeric(14, 2)


# -------------------------
# Enums
# -------------------------
class InventoryStatus(str, enum.Enum):
    ACTIVE = "active"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    EXPIRED = "expired"


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RETURN = "return"
    WASTE = "waste"


# -------------------------
# Stock per clinic + product
# -------------------------
class Inventory(Base):
    """
    One row per (tenant, clinic, product).
    current_stock only moves through InventoryTransaction rows.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_stock_non_negative"),
        Index("ix_inventory_tenant_clinic_product", "tenant_id", "clinic_id", "product_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    clinic_id = Column(Integer, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    # Stock levels
    current_stock = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=0)
    maximum_stock = Column(Integer, nullable=False, default=1000)
    reserved_stock = Column(Integer, nullable=False, default=0)  # held for pending orders

    # Location and tracking
    location = Column(String(255), nullable=True)  # shelf, room, ...
    batch_number = Column(String(100), nullable=True)
    expiry_date = Column(Date, nullable=True)

    # Cost tracking
    average_cost = Column(Money, nullable=True)
    last_cost = Column(Money, nullable=True)

    status = Column(Enum(InventoryStatus, name="inventory_status"),
                    default=InventoryStatus.ACTIVE,
                    nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    product = relationship("Product", back_populates="inventories")
    transactions = relationship("InventoryTransaction",
                                back_populates="inventory",
                                order_by="InventoryTransaction.id")

    @property
    def available_stock(self) -> int:
        return max((self.current_stock or 0) - (self.reserved_stock or 0), 0)


class InventoryTransaction(Base):
    """
    Append-only stock ledger.
    quantity > 0 = stock in, quantity < 0 = stock out.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inv_txn_tenant_product", "tenant_id", "product_id"),
        Index("ix_inv_txn_inventory_created", "inventory_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    clinic_id = Column(Integer, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False)

    transaction_type = Column(Enum(TransactionType, name="inventory_txn_type"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Money, nullable=True)
    total_cost = Column(Money, nullable=True)
    balance_after = Column(Integer, nullable=False)

    # Reference information ('order', 'appointment', 'manual', ...)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    inventory = relationship("Inventory", back_populates="transactions")
    product = relationship("Product")
    created_by_user = relationship("User")
