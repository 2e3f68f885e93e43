"""
api/routes/tenants.py
---------------------
Tenant and tenant-member management.

POST   /tenants                        — Admin: onboard a tenant.
GET    /tenants                        — Tenants the caller can access.
GET    /tenants/{tenant_id}            — One tenant.
DELETE /tenants/{tenant_id}            — Admin: delete a tenant and its data.
GET    /tenants/{tenant_id}/users      — Members of a tenant.
POST   /tenants/{tenant_id}/users      — Admin/manager: add a member.
DELETE /tenants/{tenant_id}/users/{id} — Admin/manager: remove a member.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.db.session import get_db
from chatdesk.dependencies import (
    get_current_admin,
    get_current_manager,
    get_current_user,
    get_tenant_scope,
)
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.schemas.tenant import TenantCreate, TenantRead
from chatdesk.schemas.user import UserCreate, UserRead
from chatdesk.services.access_service import TenantAccessService
from chatdesk.services.email_service import EmailService, get_email_service
from chatdesk.services.tenant_service import TenantService
from chatdesk.services.user_service import UserService

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.post(
    "",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Onboard a new tenant (admin only)",
)
async def create_tenant(
    body: TenantCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin)],
) -> TenantRead:
    try:
        tenant = await TenantService.create_tenant(db, body)
        return TenantRead.model_validate(tenant)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get(
    "",
    response_model=list[TenantRead],
    summary="List the tenants the caller can access",
)
async def list_tenants(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> list[TenantRead]:
    tenant_ids = await TenantAccessService.accessible_tenant_ids(db, current_user)
    tenants = await TenantService.list_tenants(db, tenant_ids)
    return [TenantRead.model_validate(t) for t in tenants]


@router.get(
    "/{tenant_id}",
    response_model=TenantRead,
    summary="Get a tenant",
)
async def get_tenant(
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
) -> TenantRead:
    return TenantRead.model_validate(tenant)


@router.delete(
    "/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a tenant and everything in it (admin only)",
)
async def delete_tenant(
    tenant_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin)],
) -> None:
    if admin.tenant_id == tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own tenant",
        )
    await TenantService.delete_tenant(db, tenant_id)


# ── Members ───────────────────────────────────────────────────────────────────

@router.get(
    "/{tenant_id}/users",
    response_model=list[UserRead],
    summary="List all users in a tenant",
)
async def list_tenant_users(
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[UserRead]:
    users = await UserService.list_users_in_tenant(db, tenant.id)
    return [UserRead.model_validate(u) for u in users]


@router.post(
    "/{tenant_id}/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add a user to a tenant (admin or manager)",
)
async def create_tenant_user(
    body: UserCreate,
    background_tasks: BackgroundTasks,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[User, Depends(get_current_manager)],
    email: Annotated[EmailService, Depends(get_email_service)],
) -> UserRead:
    """
    With send_invitation=true a temporary password is generated and mailed
    after the response; the user must change it on first login.
    """
    try:
        user, temp_password = await UserService.create_user(db, body, tenant.id, actor)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    if temp_password is not None:
        await db.commit()
        background_tasks.add_task(
            email.send_invitation, user.email, user.name, tenant.name, temp_password
        )
    return UserRead.model_validate(user)


@router.delete(
    "/{tenant_id}/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a user from a tenant (admin or manager)",
)
async def delete_tenant_user(
    user_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[User, Depends(get_current_manager)],
) -> None:
    await UserService.delete_user(db, tenant.id, user_id, actor)
