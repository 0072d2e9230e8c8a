"""Conversation, message and chat turn models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.config import get_settings


class MessageRole(str, Enum):
    """Valid message roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Conversation(BaseModel):
    """A titled thread of messages owned by one account."""

    id: UUID
    user_id: UUID
    title: str = "New Chat"
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    """A single turn in a conversation."""

    id: UUID
    conversation_id: UUID
    role: MessageRole
    content: str
    created_at: datetime


class ChatRequest(BaseModel):
    """One user turn in an existing conversation.

    Attributes:
        conversation_id: Conversation owned by the caller
        message: User's text input, trimmed (1 to 4000 chars)
    """

    conversation_id: UUID
    message: str

    @field_validator("message")
    @classmethod
    def message_not_empty(cls, v: str) -> str:
        """Strip whitespace and enforce the length limits."""
        v = v.strip()
        if not v:
            raise ValueError("Message cannot be empty")
        limit = get_settings().chat_max_message_length
        if len(v) > limit:
            raise ValueError(f"Message too long (max {limit} characters)")
        return v


class ChatReply(BaseModel):
    """Assistant reply plus the balance left after both charges."""

    message: str
    tokens_remaining: int
    conversation_id: UUID


class CreateConversationRequest(BaseModel):
    title: str = Field(default="New Chat", min_length=1, max_length=200)


class ConversationDetail(BaseModel):
    """A conversation with its messages in order."""

    conversation: Conversation
    messages: list[Message]


class ProfileResponse(BaseModel):
    """The caller's own account and balance."""

    id: UUID
    email: str
    tokens: int
    is_admin: bool
