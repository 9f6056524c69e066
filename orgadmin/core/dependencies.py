"""
FastAPI dependency injection functions.

Provides Redis connections, the current user and platform-admin enforcement.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from orgadmin.core.config import settings
from orgadmin.core.database import get_db
from orgadmin.core.security import blacklist_redis_key, decode_access_token
from orgadmin.models.user import User

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> User:
    """
    Validate Bearer JWT and return the authenticated User.

    Raises 401 if:
    - No token provided
    - Token is invalid or expired
    - JTI is blacklisted
    - User does not exist, is inactive or deleted
    """
    if credentials is None:
        raise _unauthorized("MISSING_TOKEN", "Authorization header required")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = UUID(payload.get("sub", ""))
    except (JWTError, ValueError):
        raise _unauthorized("INVALID_TOKEN", "Token is invalid or expired")

    if await redis.exists(blacklist_redis_key(payload.get("jti", ""))):
        raise _unauthorized("TOKEN_REVOKED", "Token has been revoked")

    user = await db.get(User, user_id)
    if user is None or not user.is_active or user.deleted_at is not None:
        raise _unauthorized("USER_NOT_FOUND", "User not found or inactive")

    return user


# ---------------------------------------------------------------------------
# Platform admin enforcement
# ---------------------------------------------------------------------------

async def get_platform_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Require a platform administrator.

    Admin organization endpoints work across tenants, so org-level roles are not enough.
    """
    if not current_user.is_platform_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "NOT_PLATFORM_ADMIN", "message": "Platform administrator access required"},
        )
    return current_user
