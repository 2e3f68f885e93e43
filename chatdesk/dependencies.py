"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication and authorisation.

Flow:
  1. OAuth2PasswordBearer extracts the Bearer token from the Authorization header.
  2. decode_access_token validates and parses the JWT (no DB round-trip).
  3. get_current_user fetches the full User record from the DB, verifying the
     token's sub (user_id) and tenant_id against persisted data.
  4. get_current_admin / get_current_manager layer role checks on top.
  5. get_tenant_scope resolves the {tenant_id} path parameter: access is
     checked BEFORE existence, so a denied caller gets the same 403 whether
     or not the tenant exists.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.logging import get_logger
from chatdesk.core.security import decode_access_token
from chatdesk.db.session import get_db
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User, UserRole
from chatdesk.services.access_service import TenantAccessService
from chatdesk.services.tenant_service import TenantService

logger = get_logger(__name__)

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Decode the JWT, then load and return the full User from the database.
    Raises 401 if the token is invalid or the user no longer exists.
    """
    try:
        payload = decode_access_token(token)
        user_id: str = payload.get("sub")
        tenant_id: str = payload.get("tenant_id")
        if not user_id or not tenant_id:
            raise _CREDENTIALS_EXCEPTION
    except JWTError as exc:
        logger.warning("JWT decode failed", error=str(exc))
        raise _CREDENTIALS_EXCEPTION

    # Always re-verify against DB so revoked / deleted users are rejected
    result = await db.execute(
        select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("User from valid JWT not found in DB", user_id=user_id)
        raise _CREDENTIALS_EXCEPTION

    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Raises 403 if the authenticated user is not an admin."""
    if current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def get_current_manager(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Admins and managers; support agents cannot manage users."""
    if current_user.role not in (UserRole.ADMIN.value, UserRole.MANAGER.value):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager privileges required",
        )
    return current_user


async def get_tenant_scope(
    tenant_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Tenant:
    await TenantAccessService.require_access(db, current_user, tenant_id)
    return await TenantService.require_tenant(db, tenant_id)
