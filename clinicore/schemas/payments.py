# FILE: clinicore/schemas/payments.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal, field_validator, model_validator

from clinicore.models.billing import (
    PaymentAuditAction,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
)

SUDAN_WALLET_PHONE = r"^\+2499[0-9]{8}$"

Money = condecimal(max_digits=14, decimal_places=2, gt=0)


class ManualPaymentCreate(BaseModel):
    invoice_id: int
    provider: PaymentProvider
    reference_id: str = Field(..., min_length=1, max_length=100)
    payer_name: str = Field(..., min_length=1, max_length=255)
    wallet_phone: Optional[str] = Field(
        None, pattern=SUDAN_WALLET_PHONE,
        description="Sudan mobile number, e.g. +249912345678")
    amount: Money
    receipt_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("reference_id", "payer_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ManualPaymentUpdate(BaseModel):
    reference_id: Optional[str] = Field(None, min_length=1, max_length=100)
    payer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    wallet_phone: Optional[str] = Field(None, pattern=SUDAN_WALLET_PHONE)
    amount: Optional[Money] = None
    receipt_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("reference_id", "payer_name")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def _required_not_null(self):
        # wallet_phone, receipt_url and notes may be cleared; these may not
        for name in ("reference_id", "payer_name", "amount"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ConfirmPaymentIn(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=1000)


class RejectPaymentIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentFilters(BaseModel):
    provider: Optional[PaymentProvider] = None
    status: Optional[PaymentStatus] = None
    payer_name: Optional[str] = None
    reference_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PaymentOut(BaseModel):
    id: int
    invoice_id: Optional[int] = None
    payment_number: str
    payment_date: date
    payment_method: PaymentMethod
    amount: Decimal
    processing_fee: Decimal
    payment_status: PaymentStatus

    provider: Optional[PaymentProvider] = None
    reference_id: Optional[str] = None
    payer_name: Optional[str] = None
    wallet_phone: Optional[str] = None
    receipt_url: Optional[str] = None
    notes: Optional[str] = None

    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None

    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentAuditOut(BaseModel):
    id: int
    payment_id: int
    action: PaymentAuditAction
    performed_by: int
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentInstructionsOut(BaseModel):
    provider: PaymentProvider
    payment_method: PaymentMethod
    instructions: str
    receipt_threshold: Optional[Decimal] = None
    wallet_phone_required: bool = False
