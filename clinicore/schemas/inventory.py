# FILE: clinicore/schemas/inventory.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal, field_validator, model_validator

from clinicore.models.inventory import InventoryStatus, TransactionType
from clinicore.schemas.marketplace import ProductOut

Money = condecimal(max_digits=14, decimal_places=2, ge=0)


class InventoryCreate(BaseModel):
    product_id: int
    clinic_id: Optional[int] = None  # defaults to the caller's clinic
    current_stock: int = Field(0, ge=0)
    minimum_stock: int = Field(0, ge=0)
    maximum_stock: int = Field(1000, ge=0)
    location: Optional[str] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    average_cost: Optional[Money] = None

    @model_validator(mode="after")
    def _levels(self):
        if self.maximum_stock < self.minimum_stock:
            raise ValueError("maximum_stock must be >= minimum_stock")
        return self


class InventoryUpdate(BaseModel):
    """Stock itself is not editable here; post a transaction instead."""
    minimum_stock: Optional[int] = Field(None, ge=0)
    maximum_stock: Optional[int] = Field(None, ge=0)
    reserved_stock: Optional[int] = Field(None, ge=0)
    location: Optional[str] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    average_cost: Optional[Money] = None

    @model_validator(mode="after")
    def _levels_not_null(self):
        for name in ("minimum_stock", "maximum_stock", "reserved_stock"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class InventoryOut(BaseModel):
    id: int
    clinic_id: int
    product_id: int
    current_stock: int
    minimum_stock: int
    maximum_stock: int
    reserved_stock: int
    available_stock: int
    location: Optional[str] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    average_cost: Optional[Decimal] = None
    last_cost: Optional[Decimal] = None
    status: InventoryStatus
    created_at: datetime
    updated_at: datetime

    product: Optional[ProductOut] = None

    model_config = ConfigDict(from_attributes=True)


class InventoryTransactionIn(BaseModel):
    product_id: int
    clinic_id: Optional[int] = None
    transaction_type: TransactionType
    quantity: int  # + stock in, - stock out
    unit_cost: Optional[Money] = None
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity must not be 0")
        return v


class InventoryAdjustIn(BaseModel):
    adjustment: int
    reason: str = Field(..., min_length=1)

    @field_validator("adjustment")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("adjustment must not be 0")
        return v


class InventoryTransactionOut(BaseModel):
    id: int
    clinic_id: int
    product_id: int
    inventory_id: int
    transaction_type: TransactionType
    quantity: int
    unit_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    balance_after: int
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InventoryStatsOut(BaseModel):
    total_items: int
    low_stock_items: int
    out_of_stock_items: int
    expired_items: int
    total_value: Decimal
