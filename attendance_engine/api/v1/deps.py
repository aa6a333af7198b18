"""
FastAPI dependencies — auth guards, database session, policy and provider client.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.security import TOKEN_ACCESS, token_user_id
from attendance_engine.db.session import async_session_factory
from attendance_engine.models.user import User
from attendance_engine.services.policy import AttendancePolicy, load_policy
from attendance_engine.services.provider import ProviderClient

# auto_error=False: fall back to the access_token cookie when the header is absent
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_policy(db: AsyncSession = Depends(get_db)) -> AttendancePolicy:
    """Current attendance rules (settings row, seeded from env on first use)."""
    return await load_policy(db)


async def get_provider_client() -> AsyncGenerator[ProviderClient, None]:
    async with ProviderClient() as client:
        yield client


# ── Auth dependencies ───────────────────────────────────────────────
def _token_from_cookie(cookie: str | None) -> str | None:
    # Login stores the cookie as "Bearer <token>"
    if not cookie:
        return None
    return cookie.removeprefix("Bearer ").strip() or None


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT (Authorization header first, then cookie) and load the user."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    final_token = token or _token_from_cookie(access_token)
    if not final_token:
        raise credentials_exc

    user_id = token_user_id(final_token, TOKEN_ACCESS)
    if user_id is None:
        raise credentials_exc

    user = await db.get(User, user_id)
    if user is None:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_manager(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Admins and managers may feed punches into the engine."""
    if current_user.role not in ("admin", "manager"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager privileges required",
        )
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Overrides, mappings, batches and settings are admin-only."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
