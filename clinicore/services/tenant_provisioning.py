# clinicore/services/tenant_provisioning.py
from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from clinicore.core.security import hash_password
from clinicore.models.tenant import Tenant, TenantStatus
from clinicore.models.user import User, UserRole

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Z0-9_]{2,64}$")


def normalize_tenant_code(raw: str) -> str:
    code = re.sub(r"\s+", "", (raw or "")).upper()
    if not _CODE_RE.match(code):
        raise ValueError("Tenant code must be 2-64 letters, digits or underscores")
    return code


def provision_tenant_with_admin(
    db: Session,
    *,
    tenant_name: str,
    tenant_code: str,
    subdomain: Optional[str],
    admin_name: str,
    admin_email: str,
    admin_password: str,
    admin_role: UserRole = UserRole.CLINIC_ADMIN,
    clinic_id: Optional[int] = 1,
) -> Tenant:
    """
    Create a tenant and its first administrator in one commit.
    Raises ValueError on duplicate code / subdomain.
    """
    tenant_code = normalize_tenant_code(tenant_code)

    if db.query(Tenant).filter(Tenant.code == tenant_code).first():
        raise ValueError("Tenant code already exists")
    if subdomain and db.query(Tenant).filter(Tenant.subdomain == subdomain).first():
        raise ValueError("Subdomain already in use")

    tenant = Tenant(
        code=tenant_code,
        name=tenant_name.strip(),
        subdomain=subdomain,
        contact_email=admin_email,
        status=TenantStatus.ACTIVE,
        config={},
    )
    db.add(tenant)
    db.flush()

    db.add(
        User(
            tenant_id=tenant.id,
            clinic_id=clinic_id,
            name=admin_name.strip(),
            email=admin_email.lower(),
            password_hash=hash_password(admin_password),
            role=admin_role,
            is_active=True,
        ))
    db.commit()
    db.refresh(tenant)

    logger.info("tenant provisioned code=%s id=%s admin=%s", tenant.code, tenant.id, admin_email)
    return tenant


def create_user(
    db: Session,
    *,
    tenant_id: int,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.STAFF,
    clinic_id: Optional[int] = None,
) -> User:
    email = email.lower()
    exists = db.query(User).filter(User.tenant_id == tenant_id, User.email == email).first()
    if exists:
        raise ValueError("A user with this email already exists")

    user = User(
        tenant_id=tenant_id,
        clinic_id=clinic_id,
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
