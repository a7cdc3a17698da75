# FILE: clinicore/schemas/billing.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal

from clinicore.models.billing import CustomerType, InvoiceStatus, ItemType

Money = condecimal(max_digits=14, decimal_places=2, ge=0)
Percent = condecimal(max_digits=5, decimal_places=2, ge=0, le=100)


class InvoiceItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    unit_price: Money
    item_type: Optional[ItemType] = None
    reference_id: Optional[str] = None
    tax_rate: Percent = Decimal("0")


class InvoiceCreate(BaseModel):
    clinic_id: Optional[int] = None
    customer_type: CustomerType
    customer_id: Optional[str] = None
    customer_info: Dict[str, Any] = Field(default_factory=dict)
    items: List[InvoiceItemIn] = Field(..., min_length=1)
    discount_amount: Money = Decimal("0")
    due_date: Optional[date] = None
    payment_terms: int = Field(30, ge=0)
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_info: Optional[Dict[str, Any]] = None
    due_date: Optional[date] = None
    payment_terms: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None


class InvoiceItemOut(BaseModel):
    id: int
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    item_type: Optional[ItemType] = None
    reference_id: Optional[str] = None
    tax_rate: Decimal
    tax_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(BaseModel):
    id: int
    clinic_id: int
    invoice_number: str
    invoice_date: date
    due_date: date
    customer_type: CustomerType
    customer_id: Optional[str] = None
    customer_info: Optional[Dict[str, Any]] = None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: InvoiceStatus
    payment_terms: int
    paid_date: Optional[date] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    items: List[InvoiceItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class InvoiceStatsOut(BaseModel):
    total_invoices: int
    status_counts: Dict[str, int]
    total_revenue: Decimal
    outstanding_amount: Decimal
    average_invoice_value: Decimal
