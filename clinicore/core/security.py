# clinicore/core/security.py
from passlib.context import CryptContext

# bcrypt for user passwords; hashes from other schemes fail verification
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)


def verify_password(raw: str, hashed: str | None) -> bool:
    """
    Safe wrapper around passlib verify (unknown / empty / malformed hashes -> False).
    """
    if not raw or not hashed:
        return False
    try:
        return pwd_context.verify(raw, hashed)
    except Exception:
        return False
