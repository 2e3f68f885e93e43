"""
services/tenant_service.py
--------------------------
Business logic for tenant management.

Service layer is responsible for:
  - Constructing queries
  - Enforcing business rules (e.g. unique names and slugs)
  - Returning domain objects (ORM models) to the route layer
  - Never returning HTTP responses (that's the route's job)

Also owns the per-tenant "technical domain" tags sent with every chat turn,
which tell the workflow which knowledge bases belong to the business unit.
"""

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.errors import NotFoundError
from chatdesk.core.logging import get_logger
from chatdesk.models.conversation import ChatMode, Conversation
from chatdesk.models.document import Document, DocumentChunk
from chatdesk.models.message import Message
from chatdesk.models.notification import Notification
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import ManagerTenantAccess, User
from chatdesk.schemas.tenant import TenantCreate

logger = get_logger(__name__)

TENANT_SLUG_TO_TECHNICAL_DOMAIN: dict[str, list[str]] = {
    "brandt-cf": ["Construction", "Forestry"],
    "brandt-ag": ["Agriculture"],
    "default": ["General"],
}

CATALOG_TENANT_SLUGS = frozenset({"brandt-cf", "brandt-ag"})


def technical_domains(tenant: Tenant | None, chat_mode: str) -> list[str]:
    """Domains for the tenant's slug; lower-cased in aftermarket mode."""
    slug = tenant.slug if tenant is not None else None
    domains = TENANT_SLUG_TO_TECHNICAL_DOMAIN.get(
        slug or "default", TENANT_SLUG_TO_TECHNICAL_DOMAIN["default"]
    )
    if chat_mode == ChatMode.aftermarket.value:
        return [domain.lower() for domain in domains]
    return list(domains)


def catalog_enabled(tenant: Tenant) -> bool:
    return tenant.slug in CATALOG_TENANT_SLUGS


class TenantService:

    @staticmethod
    async def create_tenant(db: AsyncSession, data: TenantCreate) -> Tenant:
        """
        Create a new tenant.
        Raises ValueError if a tenant with the same name or slug already exists.
        """
        tenant = Tenant(
            name=data.name,
            slug=data.slug,
            domain=data.domain,
            settings=data.settings or {},
        )
        db.add(tenant)
        try:
            await db.flush()  # Trigger DB constraints before commit
            logger.info("Tenant created", tenant_id=tenant.id, slug=tenant.slug)
            return tenant
        except IntegrityError:
            await db.rollback()
            raise ValueError(f"Tenant '{data.name}' ({data.slug}) already exists")

    @staticmethod
    async def get_tenant_by_id(db: AsyncSession, tenant_id: str) -> Tenant | None:
        result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def require_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
        tenant = await TenantService.get_tenant_by_id(db, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    @staticmethod
    async def list_tenants(db: AsyncSession, tenant_ids: set[str] | None) -> list[Tenant]:
        """All tenants when tenant_ids is None, otherwise only those ids."""
        stmt = select(Tenant)
        if tenant_ids is not None:
            stmt = stmt.where(Tenant.id.in_(tenant_ids))
        result = await db.execute(stmt.order_by(Tenant.name))
        return list(result.scalars().all())

    @staticmethod
    async def delete_tenant(db: AsyncSession, tenant_id: str) -> None:
        """
        Delete a tenant and everything scoped to it.

        Dependents are removed explicitly so the cascade does not depend on
        the database enforcing ON DELETE CASCADE.
        """
        await TenantService.require_tenant(db, tenant_id)

        document_ids = select(Document.id).where(Document.tenant_id == tenant_id)
        conversation_ids = select(Conversation.id).where(Conversation.tenant_id == tenant_id)
        user_ids = select(User.id).where(User.tenant_id == tenant_id)

        await db.execute(delete(DocumentChunk).where(DocumentChunk.document_id.in_(document_ids)))
        await db.execute(delete(Message).where(Message.conversation_id.in_(conversation_ids)))
        await db.execute(delete(Conversation).where(Conversation.tenant_id == tenant_id))
        await db.execute(delete(Document).where(Document.tenant_id == tenant_id))
        await db.execute(delete(Notification).where(Notification.tenant_id == tenant_id))
        await db.execute(
            delete(ManagerTenantAccess).where(
                (ManagerTenantAccess.tenant_id == tenant_id)
                | ManagerTenantAccess.manager_id.in_(user_ids)
            )
        )
        await db.execute(delete(User).where(User.tenant_id == tenant_id))
        await db.execute(delete(Tenant).where(Tenant.id == tenant_id))
        logger.info("Tenant deleted", tenant_id=tenant_id)
