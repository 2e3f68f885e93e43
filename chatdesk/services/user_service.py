"""
services/user_service.py
------------------------
Business logic for users, authentication, password resets and manager
tenant grants.

All tenant-member queries are scoped by tenant_id to enforce strict data
isolation. A user's home tenant is fixed at creation and never updated.
"""

from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import settings
from chatdesk.core.errors import AccessDeniedError, InvalidInputError, NotFoundError
from chatdesk.core.logging import get_logger
from chatdesk.core.security import (
    generate_reset_token,
    generate_temporary_password,
    hash_password,
    hash_reset_token,
    verify_password,
)
from chatdesk.db.base import as_utc, utcnow
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import ManagerTenantAccess, PasswordResetToken, User, UserRole
from chatdesk.schemas.user import UserCreate

logger = get_logger(__name__)


class UserService:

    @staticmethod
    async def create_user(
        db: AsyncSession,
        data: UserCreate,
        tenant_id: str,
        actor: User,
    ) -> tuple[User, str | None]:
        """
        Create a user in tenant_id.

        Managers may create managers and support agents, never admins.
        Returns the user and, for invitations, the generated temporary
        password so the caller can e-mail it.
        Raises ValueError on duplicate email.
        """
        if data.role == UserRole.ADMIN and actor.role != UserRole.ADMIN.value:
            raise AccessDeniedError("Only administrators can create administrators")

        temp_password = generate_temporary_password() if data.send_invitation else None
        user = User(
            name=data.name,
            email=data.email.lower(),
            hashed_password=hash_password(temp_password or data.password),
            role=data.role.value,
            tenant_id=tenant_id,
            must_change_password=temp_password is not None,
        )
        db.add(user)
        try:
            await db.flush()
            logger.info(
                "User created",
                new_user_id=user.id,
                role=user.role,
                tenant_id=tenant_id,
                created_by=actor.id,
            )
            return user, temp_password
        except IntegrityError:
            await db.rollback()
            raise ValueError(f"Email '{data.email}' is already registered")

    @staticmethod
    async def authenticate(
        db: AsyncSession, email: str, password: str
    ) -> User | None:
        """
        Verify credentials and return the User if valid, else None.
        Email lookup is case-insensitive.
        """
        result = await db.execute(
            select(User).where(User.email == email.lower())
        )
        user = result.scalar_one_or_none()
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    async def change_password(
        db: AsyncSession, user: User, current_password: str, new_password: str
    ) -> User:
        if not verify_password(current_password, user.hashed_password):
            raise InvalidInputError("Current password is incorrect")
        user.hashed_password = hash_password(new_password)
        user.must_change_password = False
        await db.flush()
        logger.info("Password changed", user_id=user.id)
        return user

    # ── Password reset ───────────────────────────────────────────────────────

    @staticmethod
    async def request_password_reset(db: AsyncSession, email: str) -> tuple[User, str] | None:
        """
        Issue a reset token for email, replacing any earlier one.

        Returns None for unknown addresses; the route answers the same way
        either way so accounts cannot be enumerated.
        """
        email = email.lower()
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        token, token_hash = generate_reset_token()
        await db.execute(delete(PasswordResetToken).where(PasswordResetToken.email == email))
        db.add(
            PasswordResetToken(
                email=email,
                token_hash=token_hash,
                expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            )
        )
        await db.flush()
        logger.info("Password reset issued", user_id=user.id)
        return user, token

    @staticmethod
    async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
        """Consume a reset token and set a new password. Tokens are single-use."""
        result = await db.execute(
            select(PasswordResetToken).where(
                PasswordResetToken.token_hash == hash_reset_token(token)
            )
        )
        reset = result.scalar_one_or_none()
        if reset is None or as_utc(reset.expires_at) < utcnow():
            raise InvalidInputError("Invalid or expired token")

        result = await db.execute(select(User).where(User.email == reset.email))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")

        user.hashed_password = hash_password(new_password)
        user.must_change_password = False
        await db.delete(reset)
        await db.flush()
        logger.info("Password reset completed", user_id=user.id)
        return user

    @staticmethod
    async def list_users_in_tenant(
        db: AsyncSession, tenant_id: str
    ) -> list[User]:
        result = await db.execute(
            select(User).where(User.tenant_id == tenant_id).order_by(User.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_user(db: AsyncSession, tenant_id: str, user_id: str, actor: User) -> None:
        if user_id == actor.id:
            raise InvalidInputError("You cannot delete your own account")
        result = await db.execute(
            select(User).where(User.id == user_id, User.tenant_id == tenant_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        if user.role == UserRole.ADMIN.value and actor.role != UserRole.ADMIN.value:
            raise AccessDeniedError("Only administrators can delete administrators")
        await db.execute(delete(ManagerTenantAccess).where(ManagerTenantAccess.manager_id == user_id))
        await db.delete(user)
        await db.flush()
        logger.info("User deleted", user_id=user_id, tenant_id=tenant_id, deleted_by=actor.id)

    # ── Manager tenant grants ────────────────────────────────────────────────

    @staticmethod
    async def _require_manager(db: AsyncSession, manager_id: str) -> User:
        result = await db.execute(select(User).where(User.id == manager_id))
        manager = result.scalar_one_or_none()
        if manager is None:
            raise NotFoundError("Manager not found")
        if manager.role != UserRole.MANAGER.value:
            raise InvalidInputError("Tenant access can only be granted to managers")
        return manager

    @staticmethod
    async def list_grants(db: AsyncSession, manager_id: str) -> list[ManagerTenantAccess]:
        await UserService._require_manager(db, manager_id)
        result = await db.execute(
            select(ManagerTenantAccess)
            .where(ManagerTenantAccess.manager_id == manager_id)
            .order_by(ManagerTenantAccess.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def grant_tenant_access(
        db: AsyncSession, manager_id: str, tenant_id: str
    ) -> ManagerTenantAccess:
        """Raises ValueError if the grant already exists."""
        manager = await UserService._require_manager(db, manager_id)
        tenant = await db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        if manager.tenant_id == tenant_id:
            raise InvalidInputError("Managers already have access to their home tenant")

        grant = ManagerTenantAccess(manager_id=manager_id, tenant_id=tenant_id)
        db.add(grant)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ValueError("Manager already has access to this tenant")
        logger.info("Tenant access granted", manager_id=manager_id, tenant_id=tenant_id)
        return grant

    @staticmethod
    async def revoke_tenant_access(db: AsyncSession, manager_id: str, tenant_id: str) -> None:
        result = await db.execute(
            delete(ManagerTenantAccess).where(
                ManagerTenantAccess.manager_id == manager_id,
                ManagerTenantAccess.tenant_id == tenant_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Grant not found")
        logger.info("Tenant access revoked", manager_id=manager_id, tenant_id=tenant_id)
