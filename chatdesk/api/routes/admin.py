"""
api/routes/admin.py
-------------------
Admin-only endpoints for cross-tenant manager access.

GET    /admin/managers/{manager_id}/tenant-access              — List grants.
POST   /admin/managers/{manager_id}/tenant-access              — Grant a tenant.
DELETE /admin/managers/{manager_id}/tenant-access/{tenant_id}  — Revoke it.

A manager always has access to their home tenant; grants add others.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.db.session import get_db
from chatdesk.dependencies import get_current_admin
from chatdesk.models.user import User
from chatdesk.schemas.user import TenantAccessGrant, TenantAccessRead
from chatdesk.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/managers/{manager_id}/tenant-access",
    response_model=list[TenantAccessRead],
    summary="Admin: list the extra tenants a manager can access",
)
async def list_tenant_access(
    manager_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin)],
) -> list[TenantAccessRead]:
    grants = await UserService.list_grants(db, manager_id)
    return [TenantAccessRead.model_validate(g) for g in grants]


@router.post(
    "/managers/{manager_id}/tenant-access",
    response_model=TenantAccessRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: grant a manager access to another tenant",
)
async def grant_tenant_access(
    manager_id: str,
    body: TenantAccessGrant,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin)],
) -> TenantAccessRead:
    try:
        grant = await UserService.grant_tenant_access(db, manager_id, body.tenant_id)
        return TenantAccessRead.model_validate(grant)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.delete(
    "/managers/{manager_id}/tenant-access/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Admin: revoke a manager's access to a tenant",
)
async def revoke_tenant_access(
    manager_id: str,
    tenant_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin)],
) -> None:
    await UserService.revoke_tenant_access(db, manager_id, tenant_id)
