"""
models/conversation.py
----------------------
Conversation ORM model.

Created lazily on the first chat turn. The title is the first user message
truncated to 50 characters (with an ellipsis when cut).
"""

from enum import Enum as PyEnum

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatdesk.db.base import Base, TimestampMixin, generate_uuid

TITLE_MAX_LENGTH = 50


class ChatMode(str, PyEnum):
    aftermarket = "aftermarket"
    catalog = "catalog"


def make_title(message: str) -> str:
    if len(message) > TITLE_MAX_LENGTH:
        return message[:TITLE_MAX_LENGTH] + "..."
    return message


class Conversation(Base, TimestampMixin):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChatMode.aftermarket.value
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Denormalised for zero-JOIN tenant-scoped queries
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(  # noqa: F821
        "Message",
        order_by="Message.created_at",
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Conversation id={self.id} tenant_id={self.tenant_id}>"
