"""
Password hashing helpers.

bcrypt only looks at the first 72 bytes of a password, so longer inputs are
truncated before hashing and verification.
"""

import bcrypt
from vems.app.core.config import settings


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:72]


def get_password_hash(password: str) -> str:
    """Hash a plain-text password with a fresh salt."""
    hashed = bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain-text password against a stored hash."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False
