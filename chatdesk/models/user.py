"""
models/user.py
--------------
User ORM model with roles and tenant binding.

Role design:
  - ADMIN:         Global. Bypasses every tenant check; manages tenants.
  - MANAGER:       Home tenant plus any tenant granted via ManagerTenantAccess.
  - SUPPORT_AGENT: Home tenant only.

A user's home tenant is fixed at creation. The hashed_password column stores
bcrypt hashes only — plain text is never stored and never logged.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatdesk.db.base import Base, TimestampMixin, generate_uuid


class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SUPPORT_AGENT = "SUPPORT_AGENT"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False, index=True
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.SUPPORT_AGENT.value
    )
    must_change_password: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="users")  # noqa: F821

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


class ManagerTenantAccess(Base, TimestampMixin):
    """Grants a MANAGER access to a tenant other than their home tenant."""

    __tablename__ = "manager_tenant_access"
    __table_args__ = (
        UniqueConstraint("manager_id", "tenant_id", name="uq_manager_tenant"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    manager_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<ManagerTenantAccess manager={self.manager_id} tenant={self.tenant_id}>"


class PasswordResetToken(Base, TimestampMixin):
    """
    One outstanding reset per e-mail address. The token itself is mailed to
    the user; only its sha256 digest is stored.
    """

    __tablename__ = "password_reset_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<PasswordResetToken email={self.email} expires_at={self.expires_at}>"
