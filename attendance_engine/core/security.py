"""
Admin-console credentials: bcrypt password hashes and typed JWTs.

Two token types are issued. ``access`` tokens guard every endpoint and
``refresh`` tokens are only accepted by ``/auth/refresh``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from attendance_engine.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def _encode(user_id: int | str, token_type: str, lifetime: timedelta) -> str:
    claims = {
        "sub": str(user_id),
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(user_id: int | str, expires_delta: timedelta | None = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(user_id, TOKEN_ACCESS, lifetime)


def create_refresh_token(user_id: int | str) -> str:
    return _encode(user_id, TOKEN_REFRESH, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def token_user_id(token: str, expected_type: str) -> int | None:
    """User id from a valid token of *expected_type*; None for anything else."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if claims.get("type") != expected_type:
        return None
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None
