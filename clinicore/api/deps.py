# clinicore/api/deps.py
from __future__ import annotations

from typing import Generator, Optional, Tuple

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError
from sqlalchemy.orm import Session

from clinicore.db.session import SessionLocal
from clinicore.models.tenant import Tenant
from clinicore.models.user import User
from clinicore.services.manual_payments import RequestMeta
from clinicore.utils.jwt import ACCESS, decode_token


# =========================================================
# DB (per request)
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return decode_token(raw_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def load_tenant_from_claims(payload: dict, db: Session) -> Tenant:
    tid = payload.get("tid")
    tcode = payload.get("tcode")

    if not tid and not tcode:
        raise HTTPException(status_code=401, detail="Missing tenant in token")

    q = db.query(Tenant)
    if tid:
        q = q.filter(Tenant.id == tid)
    if tcode:
        q = q.filter(Tenant.code == tcode)

    tenant: Optional[Tenant] = q.first()
    if not tenant:
        raise HTTPException(status_code=403, detail="Tenant not found")
    if not tenant.is_active:
        raise HTTPException(status_code=403, detail="Tenant inactive")
    return tenant


def load_user_in_tenant(db: Session, tenant: Tenant, email: Optional[str]) -> User:
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user: Optional[User] = (db.query(User).filter(
        User.tenant_id == tenant.id,
        User.email == email,
    ).first())
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")
    return user


def get_current_user_and_tenant_from_token(raw_token: Optional[str], db: Session) -> Tuple[User, Tenant]:
    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw_token)
    # a refresh token must not open the API
    if payload.get("type", ACCESS) != ACCESS:
        raise HTTPException(status_code=401, detail="Wrong token type")

    tenant = load_tenant_from_claims(payload, db)
    user = load_user_in_tenant(db, tenant, payload.get("sub"))
    return user, tenant


def current_user_and_tenant(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Tuple[User, Tenant]:
    raw = _extract_bearer(authorization)
    return get_current_user_and_tenant_from_token(raw, db)


def current_user(ctx: Tuple[User, Tenant] = Depends(current_user_and_tenant)) -> User:
    return ctx[0]


def current_tenant(ctx: Tuple[User, Tenant] = Depends(current_user_and_tenant)) -> Tenant:
    return ctx[1]


def request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
