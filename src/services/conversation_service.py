"""Conversation and message persistence service."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.database import affected_rows, get_pool
from src.models.chat import Conversation, Message, MessageRole

logger = structlog.get_logger(__name__)

TITLE_MAX_LENGTH = 50


def title_from_message(message: str) -> str:
    """First 50 characters of the opening message, with an ellipsis if cut."""
    if len(message) > TITLE_MAX_LENGTH:
        return message[:TITLE_MAX_LENGTH] + "..."
    return message


def _row_to_conversation(row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ConversationService:
    """Service for conversation and message CRUD operations."""

    async def create_conversation(self, user_id: UUID, title: str = "New Chat") -> Conversation:
        conversation_id = uuid4()
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (id, user_id, title, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $4)
                """,
                conversation_id,
                user_id,
                title,
                now,
            )

        logger.info(
            "conversation_created",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
        )

        return Conversation(
            id=conversation_id,
            user_id=user_id,
            title=title,
            created_at=now,
            updated_at=now,
        )

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Fetch a conversation regardless of owner; callers check ownership."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, user_id, title, created_at, updated_at
                FROM conversations
                WHERE id = $1
                """,
                conversation_id,
            )

        return _row_to_conversation(row) if row else None

    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        """Conversations of one account, most recently updated first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, user_id, title, created_at, updated_at
                FROM conversations
                WHERE user_id = $1
                ORDER BY updated_at DESC
                """,
                user_id,
            )

        return [_row_to_conversation(r) for r in rows]

    async def delete_conversation(self, conversation_id: UUID, user_id: UUID) -> bool:
        """Delete an owned conversation and its messages."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )

        deleted = affected_rows(result) > 0
        if deleted:
            logger.info(
                "conversation_deleted",
                conversation_id=str(conversation_id),
                user_id=str(user_id),
            )
        return deleted

    async def set_title(self, conversation_id: UUID, title: str) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE conversations SET title = $1, updated_at = NOW() WHERE id = $2",
                title,
                conversation_id,
            )

    async def add_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
    ) -> Message:
        """Append a message and bump the conversation's updated_at."""
        message_id = uuid4()
        now = datetime.now(timezone.utc)
        role = MessageRole(role)
        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO messages (id, conversation_id, role, content, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    message_id,
                    conversation_id,
                    role.value,
                    content,
                    now,
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = $1 WHERE id = $2",
                    now,
                    conversation_id,
                )

        return Message(
            id=message_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=now,
        )

    async def get_messages(self, conversation_id: UUID) -> list[Message]:
        """All messages of a conversation in chronological order."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, conversation_id, role, content, created_at
                FROM messages
                WHERE conversation_id = $1
                ORDER BY created_at ASC
                """,
                conversation_id,
            )

        return [
            Message(
                id=row["id"],
                conversation_id=row["conversation_id"],
                role=MessageRole(row["role"]),
                content=row["content"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
