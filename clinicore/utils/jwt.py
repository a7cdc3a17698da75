# clinicore/utils/jwt.py
from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import Request
from jose import jwt, JWTError

from clinicore.core.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _create_token(
    *,
    subject: str,
    tenant_id: int,
    tenant_code: str,
    role: str,
    token_type: str,
    expires_delta: timedelta,
) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": subject,  # user email
        "tid": tenant_id,  # tenant id
        "tcode": tenant_code,  # tenant code (e.g. KRT001)
        "role": role,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_access_refresh(
    subject: str,
    tenant_id: int,
    tenant_code: str,
    role: str,
) -> Tuple[str, str]:
    """
    Create access + refresh tokens WITH tenant info inside.
    """
    access_token = _create_token(
        subject=subject,
        tenant_id=tenant_id,
        tenant_code=tenant_code,
        role=role,
        token_type=ACCESS,
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    refresh_token = _create_token(
        subject=subject,
        tenant_id=tenant_id,
        tenant_code=tenant_code,
        role=role,
        token_type=REFRESH,
        expires_delta=timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
    )
    return access_token, refresh_token


def decode_token(raw_token: str) -> dict:
    """Raises jose.JWTError on bad signature / expiry."""
    return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])


def extract_tenant_from_request(request: Request) -> Optional[str]:
    """
    Try to read tenant code from Authorization Bearer token.
    """
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1]
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    return payload.get("tcode")
