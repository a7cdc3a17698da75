# clinicore/api/routes_auth.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinicore.api.deps import (
    _decode_token,
    current_user,
    get_db,
    load_tenant_from_claims,
    load_user_in_tenant,
)
from clinicore.api.response import ok
from clinicore.core.rbac import require_roles
from clinicore.core.security import verify_password
from clinicore.models.tenant import Tenant
from clinicore.models.user import User, UserRole
from clinicore.schemas.auth import (
    LoginIn,
    RefreshIn,
    RegisterTenantIn,
    TokenOut,
    UserCreate,
    UserOut,
)
from clinicore.services.tenant_provisioning import create_user, provision_tenant_with_admin
from clinicore.utils.jwt import REFRESH, create_access_refresh

logger = logging.getLogger(__name__)

router = APIRouter()


def _issue_tokens(user: User, tenant: Tenant) -> TokenOut:
    access, refresh = create_access_refresh(
        subject=user.email,
        tenant_id=tenant.id,
        tenant_code=tenant.code,
        role=user.role.value,
    )
    return TokenOut(access_token=access, refresh_token=refresh)


# ---------------------------------------------------------------------
#  Register tenant + first admin
# ---------------------------------------------------------------------
@router.post("/register-tenant")
def register_tenant(
        payload: RegisterTenantIn,
        db: Session = Depends(get_db),
):
    """
    FIRST STEP: create the tenant and its clinic_admin, then log in.
    """
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    tenant_code = (payload.tenant_code or payload.tenant_name.replace(" ", "").upper())

    try:
        tenant = provision_tenant_with_admin(
            db,
            tenant_name=payload.tenant_name,
            tenant_code=tenant_code,
            subdomain=payload.subdomain,
            admin_name=payload.admin_name,
            admin_email=payload.email,
            admin_password=payload.password,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ok(
        {
            "message": "Tenant created and Admin user provisioned. Proceed to login.",
            "tenant_id": tenant.id,
            "tenant_code": tenant.code,
        },
        status_code=201,
    )


# ---------------------------------------------------------------------
#  Login (tenant code + email + password -> tokens)
# ---------------------------------------------------------------------
@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    tenant: Optional[Tenant] = (db.query(Tenant).filter(Tenant.code == payload.tenant_code.strip().upper()).first())
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    if not tenant.is_active:
        raise HTTPException(status_code=403, detail="Tenant inactive")

    user: Optional[User] = (db.query(User).filter(
        User.tenant_id == tenant.id,
        User.email == payload.email.lower(),
    ).first())
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("failed login tenant=%s email=%s", tenant.code, payload.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")

    return ok(_issue_tokens(user, tenant))


@router.post("/refresh")
def refresh_token(payload: RefreshIn, db: Session = Depends(get_db)):
    claims = _decode_token(payload.refresh_token)
    if claims.get("type") != REFRESH:
        raise HTTPException(status_code=401, detail="Wrong token type")

    tenant = load_tenant_from_claims(claims, db)
    user = load_user_in_tenant(db, tenant, claims.get("sub"))
    return ok(_issue_tokens(user, tenant))


@router.get("/me")
def me(user: User = Depends(current_user)):
    return ok(UserOut.model_validate(user))


# ---------------------------------------------------------------------
#  Users (admin only)
# ---------------------------------------------------------------------
@router.post("/users")
def add_user(
        payload: UserCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, [UserRole.CLINIC_ADMIN])
    if payload.role == UserRole.SUPER_ADMIN:
        require_roles(user, [UserRole.SUPER_ADMIN])
    try:
        created = create_user(
            db,
            tenant_id=user.tenant_id,
            name=payload.name,
            email=payload.email,
            password=payload.password,
            role=payload.role,
            clinic_id=payload.clinic_id if payload.clinic_id is not None else user.clinic_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ok(UserOut.model_validate(created), status_code=201)
