"""
services/access_service.py
--------------------------
Tenant access resolver.

One predicate decides every tenant-scoped request (documents,
conversations, notifications, user management):

  ADMIN                      → always
  home tenant == target      → yes
  MANAGER                    → iff a ManagerTenantAccess grant exists
  anyone else                → no

No route may special-case a looser rule; they all go through
dependencies.get_tenant_scope, which calls require_access().
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.errors import AccessDeniedError
from chatdesk.core.logging import get_logger
from chatdesk.models.user import ManagerTenantAccess, User, UserRole

logger = get_logger(__name__)


class TenantAccessService:

    @staticmethod
    async def has_manager_grant(db: AsyncSession, manager_id: str, tenant_id: str) -> bool:
        result = await db.execute(
            select(ManagerTenantAccess.id).where(
                ManagerTenantAccess.manager_id == manager_id,
                ManagerTenantAccess.tenant_id == tenant_id,
            )
        )
        return result.first() is not None

    @staticmethod
    async def can_access(db: AsyncSession, actor: User, tenant_id: str) -> bool:
        if actor.role == UserRole.ADMIN.value:
            return True
        if actor.tenant_id == tenant_id:
            return True
        if actor.role == UserRole.MANAGER.value:
            return await TenantAccessService.has_manager_grant(db, actor.id, tenant_id)
        return False

    @staticmethod
    async def require_access(db: AsyncSession, actor: User, tenant_id: str) -> None:
        if not await TenantAccessService.can_access(db, actor, tenant_id):
            logger.info(
                "Tenant access denied",
                user_id=actor.id,
                role=actor.role,
                tenant_id=tenant_id,
            )
            raise AccessDeniedError()

    @staticmethod
    async def accessible_tenant_ids(db: AsyncSession, actor: User) -> set[str] | None:
        """Tenant ids the actor may see; None means all (ADMIN)."""
        if actor.role == UserRole.ADMIN.value:
            return None
        ids = {actor.tenant_id}
        if actor.role == UserRole.MANAGER.value:
            result = await db.execute(
                select(ManagerTenantAccess.tenant_id).where(
                    ManagerTenantAccess.manager_id == actor.id
                )
            )
            ids.update(result.scalars().all())
        return ids
