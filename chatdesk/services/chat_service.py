"""
services/chat_service.py
------------------------
One chat turn, end to end:

  1. Resolve the conversation (explicit id, a recent duplicate, or new)
  2. Build history from the last CHAT_HISTORY_LIMIT stored messages
  3. Derive context + entity hints (context_extractor)
  4. Call the workflow (workflow_client: signing, retries, normalising)
  5. Persist USER and, when non-empty, ASSISTANT messages
  6. Return the canonical reply

Conversations are private to the user that started them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import settings
from chatdesk.core.errors import AccessDeniedError, InvalidInputError, NotFoundError
from chatdesk.core.logging import get_logger
from chatdesk.db.base import utcnow
from chatdesk.models.conversation import ChatMode, Conversation, make_title
from chatdesk.models.message import Message, MessageRole
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.services.context_extractor import HistoryMessage, extract_context
from chatdesk.services.response_normalizer import NormalizedResponse
from chatdesk.services.tenant_service import catalog_enabled, technical_domains
from chatdesk.services.workflow_client import ChatWorkflowClient, WorkflowRequest

logger = get_logger(__name__)

DUPLICATE_WINDOW = timedelta(minutes=5)
DUPLICATE_CANDIDATES = 5
RETRY_TOPIC_MESSAGES = 4

STILL_WORKING_MESSAGE = (
    "I'm still working on your request. Please check back in a moment, "
    "or send your question again."
)

_HISTORY_ROLES = {
    MessageRole.USER.value: "user",
    MessageRole.ASSISTANT.value: "assistant",
    MessageRole.SYSTEM.value: "system",
}


@dataclass
class ChatTurn:
    conversation: Conversation
    reply: NormalizedResponse
    timestamp: datetime
    pending: bool = False


def _history_entry(message: Message) -> dict[str, Any]:
    return {
        "role": _HISTORY_ROLES.get(message.role, "system"),
        "content": message.content,
        "timestamp": message.created_at.isoformat(),
    }


def _retry_note(messages: list[Message], message: str, existing: bool) -> dict[str, Any]:
    if existing:
        topic = ""
        for item in messages[-RETRY_TOPIC_MESSAGES:]:
            if item.role == MessageRole.USER.value and len(item.content) > 20:
                if len(item.content) > len(topic):
                    topic = item.content[:100]
        content = (
            "This is a retry after a temporary service disruption. "
            f"The conversation is about: {topic}. Please maintain context and "
            "provide a relevant response to the user's latest question."
        )
    else:
        content = (
            "This is a retry after a temporary service disruption. "
            f'The user\'s question is: "{message}". Please provide a relevant response.'
        )
    return {"role": "system", "content": content, "timestamp": utcnow().isoformat()}


class ChatService:

    # ── Conversations ────────────────────────────────────────────────────────

    @staticmethod
    async def get_conversation(
        db: AsyncSession, tenant_id: str, user_id: str, conversation_id: str
    ) -> Conversation:
        result = await db.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
                Conversation.user_id == user_id,
            )
        )
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    @staticmethod
    async def list_conversations(
        db: AsyncSession, tenant_id: str, user_id: str
    ) -> list[Conversation]:
        result = await db.execute(
            select(Conversation)
            .where(Conversation.tenant_id == tenant_id, Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_conversation(
        db: AsyncSession, tenant_id: str, user_id: str, conversation_id: str
    ) -> None:
        conversation = await ChatService.get_conversation(
            db, tenant_id, user_id, conversation_id
        )
        await db.execute(delete(Message).where(Message.conversation_id == conversation.id))
        await db.execute(delete(Conversation).where(Conversation.id == conversation.id))
        logger.info("Conversation deleted", conversation_id=conversation_id, tenant_id=tenant_id)

    @staticmethod
    async def find_recent_duplicate(
        db: AsyncSession, tenant_id: str, user_id: str, message: str
    ) -> Conversation | None:
        """A conversation started in the last few minutes with the same first question."""
        result = await db.execute(
            select(Conversation)
            .where(
                Conversation.tenant_id == tenant_id,
                Conversation.user_id == user_id,
                Conversation.created_at >= utcnow() - DUPLICATE_WINDOW,
            )
            .order_by(Conversation.created_at.desc())
            .limit(DUPLICATE_CANDIDATES)
        )
        for conversation in result.scalars().all():
            first = next(
                (m for m in conversation.messages if m.role == MessageRole.USER.value), None
            )
            if first is not None and first.content.lower() == message.lower():
                return conversation
        return None

    # ── Chat turn ────────────────────────────────────────────────────────────

    @staticmethod
    async def send_message(
        db: AsyncSession,
        tenant: Tenant,
        user: User,
        client: ChatWorkflowClient,
        *,
        message: str,
        conversation_id: str | None = None,
        chat_mode: str = ChatMode.aftermarket.value,
        is_retry: bool = False,
        wait_for_response: bool = False,
    ) -> ChatTurn:
        message = message.strip()
        if not message:
            raise InvalidInputError("Message is required")
        if chat_mode == ChatMode.catalog.value and not catalog_enabled(tenant):
            raise AccessDeniedError("Catalog chat is not available for this tenant")

        if conversation_id:
            conversation = await ChatService.get_conversation(
                db, tenant.id, user.id, conversation_id
            )
            existing = True
        else:
            conversation = await ChatService.find_recent_duplicate(
                db, tenant.id, user.id, message
            )
            existing = conversation is not None
            if conversation is None:
                conversation = Conversation(
                    title=make_title(message),
                    mode=chat_mode,
                    user_id=user.id,
                    tenant_id=tenant.id,
                )
                db.add(conversation)
                await db.flush()
                logger.info(
                    "Conversation started",
                    conversation_id=conversation.id,
                    tenant_id=tenant.id,
                    chat_mode=chat_mode,
                )

        stored = list(conversation.messages) if existing else []
        recent = stored[-settings.CHAT_HISTORY_LIMIT:]
        history = [_history_entry(m) for m in recent]
        if is_retry:
            history.insert(0, _retry_note(stored, message, existing=conversation_id is not None))

        context = extract_context(
            [HistoryMessage(role=h["role"], content=h["content"]) for h in history],
            message,
            is_retry=is_retry,
        )

        db.add(Message(role=MessageRole.USER.value, content=message, conversation_id=conversation.id))
        await db.flush()

        timestamp_ms = int(utcnow().timestamp() * 1000)
        reply = await client.send(
            WorkflowRequest(
                message=message,
                history=history,
                tenant=tenant,
                user=user,
                session_id=f"session_{conversation.id}_{timestamp_ms}",
                chat_mode=chat_mode,
                context=context,
                technical_domains=technical_domains(tenant, chat_mode),
                is_retry=is_retry,
            )
        )

        if reply.is_empty:
            logger.warning(
                "Workflow returned nothing displayable",
                conversation_id=conversation.id,
                wait_for_response=wait_for_response,
            )
            if wait_for_response:
                return ChatTurn(
                    conversation=conversation,
                    reply=reply,
                    timestamp=utcnow(),
                    pending=True,
                )
            return ChatTurn(
                conversation=conversation,
                reply=NormalizedResponse(content=STILL_WORKING_MESSAGE, is_fallback_mode=True),
                timestamp=utcnow(),
            )

        json_data = (
            {"componentData": reply.component_data.as_dict()}
            if reply.component_data is not None
            else None
        )
        assistant = Message(
            role=MessageRole.ASSISTANT.value,
            content=reply.content,
            json_data=json_data,
            conversation_id=conversation.id,
        )
        db.add(assistant)
        conversation.updated_at = utcnow()
        await db.flush()

        logger.info(
            "Chat turn stored",
            conversation_id=conversation.id,
            fallback=reply.is_fallback_mode,
            component=reply.component_data.component if reply.component_data else None,
        )
        return ChatTurn(conversation=conversation, reply=reply, timestamp=assistant.created_at)
