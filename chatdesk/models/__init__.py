"""
models/__init__.py
------------------
Re-export all models so Alembic's env.py can import Base and discover
all tables via a single import:

    from chatdesk.models import Base
"""

from chatdesk.db.base import Base
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import ManagerTenantAccess, PasswordResetToken, User, UserRole
from chatdesk.models.document import (
    Document,
    DocumentChunk,
    DocumentMetadata,
    DocumentStatus,
    ProcessingState,
)
from chatdesk.models.conversation import ChatMode, Conversation
from chatdesk.models.message import Message, MessageRole
from chatdesk.models.notification import Notification, NotificationType

__all__ = [
    "Base",
    "Tenant",
    "User",
    "UserRole",
    "ManagerTenantAccess",
    "PasswordResetToken",
    "Document",
    "DocumentChunk",
    "DocumentMetadata",
    "DocumentStatus",
    "ProcessingState",
    "ChatMode",
    "Conversation",
    "Message",
    "MessageRole",
    "Notification",
    "NotificationType",
]
