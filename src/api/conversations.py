"""Conversation management API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from src.api.dependencies import get_current_user
from src.models.chat import Conversation, ConversationDetail, CreateConversationRequest
from src.models.user import User
from src.services.conversation_service import ConversationService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.get("")
async def list_conversations(
    current_user: User = Depends(get_current_user),
) -> list[Conversation]:
    """List the caller's conversations, most recently updated first."""
    service = ConversationService()
    return await service.list_conversations(current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest | None = None,
    current_user: User = Depends(get_current_user),
) -> Conversation:
    """Start a new, empty conversation."""
    service = ConversationService()
    title = request.title if request is not None else "New Chat"
    return await service.create_conversation(current_user.id, title=title)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
) -> ConversationDetail:
    """Get a conversation with its messages in order."""
    service = ConversationService()
    conversation = await service.get_conversation(conversation_id)

    # Foreign conversations look the same as missing ones
    if conversation is None or conversation.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )

    messages = await service.get_messages(conversation_id)
    return ConversationDetail(conversation=conversation, messages=messages)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
) -> None:
    """Delete one of the caller's conversations."""
    service = ConversationService()
    deleted = await service.delete_conversation(conversation_id, current_user.id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
