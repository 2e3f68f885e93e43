"""
schemas/chat.py
---------------
Pydantic models for chat turns and conversation history.

The request keeps the camelCase field names the chat widget sends.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from chatdesk.models.conversation import ChatMode


class ChatRequest(BaseModel):
    message: str = Field(
        ...,
        min_length=1,
        max_length=8000,
        examples=["What hydraulic filter fits a Deere 850K?"],
    )
    conversationId: Optional[str] = None
    chatMode: ChatMode = ChatMode.aftermarket
    isRetry: bool = False
    waitForResponse: bool = False


class ChatResponse(BaseModel):
    """Canonical chat reply."""
    role: Literal["assistant"] = "assistant"
    content: str
    timestamp: datetime
    conversationId: str
    isFallbackMode: bool = False
    componentData: Optional[dict[str, Any]] = None
    pending: bool = False


class MessageRead(BaseModel):
    id: str
    role: str
    content: str
    json_data: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    id: str
    title: str
    mode: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConversationRead(ConversationSummary):
    messages: list[MessageRead]
