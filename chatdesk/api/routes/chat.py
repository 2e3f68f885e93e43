"""
api/routes/chat.py
------------------
Chat endpoints.

POST   /tenants/{tenant_id}/chat                            — Send a chat turn.
GET    /tenants/{tenant_id}/conversations                   — Caller's conversations.
GET    /tenants/{tenant_id}/conversations/{conversation_id} — With messages.
DELETE /tenants/{tenant_id}/conversations/{conversation_id} — Delete.

Upstream outages never surface as errors here: the reply comes back with
isFallbackMode=true and the client may resend with isRetry=true.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.db.session import get_db
from chatdesk.dependencies import get_current_user, get_tenant_scope
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.schemas.chat import (
    ChatRequest,
    ChatResponse,
    ConversationRead,
    ConversationSummary,
)
from chatdesk.services.chat_service import ChatService
from chatdesk.services.workflow_client import ChatWorkflowClient, get_workflow_client

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Send a message to the support assistant",
)
async def chat(
    body: ChatRequest,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[ChatWorkflowClient, Depends(get_workflow_client)],
) -> ChatResponse:
    turn = await ChatService.send_message(
        db,
        tenant,
        current_user,
        client,
        message=body.message,
        conversation_id=body.conversationId,
        chat_mode=body.chatMode.value,
        is_retry=body.isRetry,
        wait_for_response=body.waitForResponse,
    )
    reply = turn.reply
    return ChatResponse(
        content=reply.content,
        timestamp=turn.timestamp,
        conversationId=turn.conversation.id,
        isFallbackMode=reply.is_fallback_mode,
        componentData=reply.component_data.as_dict() if reply.component_data else None,
        pending=turn.pending,
    )


@router.get(
    "/conversations",
    response_model=list[ConversationSummary],
    summary="List the caller's conversations in this tenant",
)
async def list_conversations(
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[ConversationSummary]:
    conversations = await ChatService.list_conversations(db, tenant.id, current_user.id)
    return [ConversationSummary.model_validate(c) for c in conversations]


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationRead,
    summary="Get a conversation with its messages",
)
async def get_conversation(
    conversation_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ConversationRead:
    conversation = await ChatService.get_conversation(
        db, tenant.id, current_user.id, conversation_id
    )
    return ConversationRead.model_validate(conversation)


@router.delete(
    "/conversations/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a conversation",
)
async def delete_conversation(
    conversation_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    await ChatService.delete_conversation(db, tenant.id, current_user.id, conversation_id)
