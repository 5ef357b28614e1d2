"""
shared/middleware/auth.py
FastAPI dependency functions for identity and authorization.
Authentication happens at the gateway; this service trusts the X-User-Id header.
Scheduler calls are authorized with a shared bearer secret instead.
"""

import secrets
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.models.models import User, UserRole

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def _load_user(raw_id: str, db: AsyncSession) -> Optional[User]:
    try:
        user_id = uuid.UUID(raw_id)
    except ValueError:
        raise _unauthorized("Invalid user identity")
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_optional_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """The calling user, or None for guests. Inactive accounts are treated as guests."""
    if not x_user_id:
        return None
    user = await _load_user(x_user_id, db)
    return user if user and user.is_active else None


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not x_user_id:
        raise _unauthorized("Authentication required")
    user = await _load_user(x_user_id, db)
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    return user


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(self, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in self.roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required role: {[r.value for r in self.roles]}",
            )
        return current_user


require_admin = RoleRequired(UserRole.ADMIN)


async def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """`Authorization: Bearer <CRON_SECRET>`. Disabled entirely when no secret is set."""
    if not settings.CRON_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron endpoint not configured",
        )
    if not credentials or not secrets.compare_digest(
        credentials.credentials.encode(), settings.CRON_SECRET.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
            headers={"WWW-Authenticate": "Bearer"},
        )
