# FILE: clinicore/schemas/marketplace.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal

from clinicore.models.marketplace import ProductStatus, SupplierStatus

Money = condecimal(max_digits=14, decimal_places=2, ge=0)


# ---------- Suppliers ----------


class SupplierBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    contact_person: str | None = ""
    phone: str | None = ""
    email: str | None = ""
    address: str | None = ""
    status: SupplierStatus = SupplierStatus.ACTIVE


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    status: Optional[SupplierStatus] = None


class SupplierOut(SupplierBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- Products ----------


class ProductBase(BaseModel):
    supplier_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    sku: str = Field(..., min_length=1, max_length=100)
    barcode: str | None = None
    brand: str | None = None
    unit: str = "unit"
    cost_price: Money = Decimal("0")
    selling_price: Money = Decimal("0")
    status: ProductStatus = ProductStatus.ACTIVE


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    barcode: Optional[str] = None
    brand: Optional[str] = None
    unit: Optional[str] = None
    cost_price: Optional[Money] = None
    selling_price: Optional[Money] = None
    status: Optional[ProductStatus] = None


class ProductOut(ProductBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
