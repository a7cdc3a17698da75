from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional, Set

from fastapi import HTTPException, status

from clinicore.core.config import settings


def _code(x: Any) -> str:
    """
    Normalize a role value safely.
    Supports:
      - Enum -> enum.value
      - str  -> str
      - object with .role -> str/Enum
    """
    if x is None:
        return ""

    if isinstance(x, Enum):
        return str(x.value)

    if isinstance(x, str):
        return x

    if hasattr(x, "role"):
        return _code(getattr(x, "role"))

    return str(x)


def role_of(user: Any) -> str:
    return _code(user).strip().lower()


def is_super_admin(user: Any) -> bool:
    return role_of(user) == "super_admin"


def has_role(user: Any, roles: Iterable[Any]) -> bool:
    if not user:
        return False
    if is_super_admin(user):
        return True
    wanted: Set[str] = {_code(r).strip().lower() for r in roles if _code(r).strip()}
    return role_of(user) in wanted


def require_roles(user: Any, roles: Iterable[Any], *, message: Optional[str] = None) -> None:
    """
    Raise 403 if the user's role is not one of `roles`.
    """
    if has_role(user, roles):
        return

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=message or "You do not have permission to perform this action.",
    )


def is_payment_reviewer(user: Any) -> bool:
    return has_role(user, settings.PAYMENT_REVIEWER_ROLES)


def require_payment_reviewer(user: Any, action: str = "review") -> None:
    require_roles(
        user,
        settings.PAYMENT_REVIEWER_ROLES,
        message=f"Only finance administrators can {action} payments",
    )
