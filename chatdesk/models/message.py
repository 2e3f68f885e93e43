"""
models/message.py
-----------------
Chat message model.

Messages are immutable once written and strictly ordered by created_at
within their conversation. json_data carries structured extras produced by
the response normaliser (currently {"componentData": {...}}).
"""

from enum import Enum as PyEnum

from sqlalchemy import JSON, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatdesk.db.base import Base, TimestampMixin, generate_uuid


class MessageRole(str, PyEnum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


class Message(Base, TimestampMixin):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    json_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} role={self.role}>"
