"""
models/tenant.py
----------------
Tenant (company / business unit) ORM model.

Each tenant is an isolated organisational unit. All data belonging to a tenant
is scoped by tenant_id at the query level — never trust application-level
filtering alone; always include tenant_id in WHERE clauses.

slug is the stable short name used for per-tenant behaviour lookups
(technical domains, catalog chat availability).
"""

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatdesk.db.base import Base, TimestampMixin, generate_uuid


class Tenant(Base, TimestampMixin):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Feature flags and the namespace list shown in the upload dialog
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User", back_populates="tenant", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug}>"
