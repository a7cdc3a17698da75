# FILE: clinicore/schemas/auth.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from clinicore.models.user import UserRole


class RegisterTenantIn(BaseModel):
    tenant_name: str = Field(..., min_length=2, max_length=191)
    tenant_code: Optional[str] = Field(None, max_length=64)
    subdomain: Optional[str] = Field(None, max_length=100)

    admin_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirm_password: str


class LoginIn(BaseModel):
    tenant_code: str
    email: EmailStr
    password: str


class RefreshIn(BaseModel):
    refresh_token: str


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.STAFF
    clinic_id: Optional[int] = None


class UserOut(BaseModel):
    id: int
    tenant_id: int
    clinic_id: Optional[int] = None
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
