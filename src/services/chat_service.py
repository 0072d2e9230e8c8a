"""Chat turns metered against the token ledger.

A turn is charged twice: once for the user's words before the model is
called (guarded, the turn is rejected when the balance cannot cover it) and
once for the reply's words afterwards (unguarded, the reply already exists).
"""

import asyncio
import time
from typing import Optional
from uuid import UUID

import structlog

from agents import Agent, Runner

from src.config import get_settings
from src.models.chat import ChatReply, Message, MessageRole
from src.services.conversation_service import ConversationService, title_from_message
from src.services.errors import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    UpstreamUnavailableError,
)
from src.services.token_service import TokenService, count_words

logger = structlog.get_logger(__name__)


def build_turns(history: list[Message]) -> list[dict]:
    """Ordered {role, content} turns for the model, system messages excluded."""
    return [
        {"role": m.role.value, "content": m.content}
        for m in history
        if m.role != MessageRole.SYSTEM
    ]


class ChatService:
    """Service for one metered chat round-trip via the OpenAI Agents SDK."""

    def __init__(
        self,
        conversation_service: Optional[ConversationService] = None,
        token_service: Optional[TokenService] = None,
    ) -> None:
        self.settings = get_settings()
        self.conversation_service = conversation_service or ConversationService()
        self.token_service = token_service or TokenService()

    async def complete(self, turns: list[dict]) -> str:
        """Ask the model for a single reply to the ordered turns.

        Raises:
            UpstreamUnavailableError: On any provider failure or timeout
        """
        agent = Agent(
            name="Assistant",
            instructions=self.settings.chat_system_prompt,
            model=self.settings.openai_model,
        )

        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                Runner.run(agent, input=turns),
                timeout=self.settings.timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "chat_completion_failed",
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=int((time.perf_counter() - start_time) * 1000),
            )
            raise UpstreamUnavailableError("AI service temporarily unavailable") from e

        reply = str(result.final_output or "")
        logger.info(
            "chat_completion_received",
            model=self.settings.openai_model,
            turns=len(turns),
            reply_length=len(reply),
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return reply

    async def complete_turn(
        self,
        user_id: UUID,
        conversation_id: UUID,
        message: str,
    ) -> ChatReply:
        """Charge, persist, ask the model, charge again, persist the reply.

        Args:
            user_id: Authenticated account
            conversation_id: Conversation that must belong to the account
            message: Trimmed user message

        Returns:
            ChatReply with the assistant text and the remaining balance

        Raises:
            NotFoundError: Conversation does not exist
            AuthorizationError: Conversation belongs to someone else
            InsufficientBalanceError: The message costs more than the balance
            UpstreamUnavailableError: The model call failed
            StorageError: The reply could not be saved
        """
        conversation = await self.conversation_service.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")

        if conversation.user_id != user_id:
            logger.warning(
                "conversation_access_denied",
                user_id=str(user_id),
                conversation_id=str(conversation_id),
            )
            raise AuthorizationError()

        # Pre-flight charge; raises before anything is persisted or sent upstream
        balance = await self.token_service.decrement(user_id, count_words(message))

        history = await self.conversation_service.get_messages(conversation_id)
        is_first_message = len(history) == 0

        user_message = await self.conversation_service.add_message(
            conversation_id, MessageRole.USER, message
        )
        history.append(user_message)

        reply = await self.complete(build_turns(history))

        settled = await self.token_service.settle(user_id, count_words(reply))
        tokens_remaining = settled if settled is not None else balance

        try:
            await self.conversation_service.add_message(
                conversation_id, MessageRole.ASSISTANT, reply
            )
        except Exception as e:
            logger.error(
                "assistant_message_save_failed",
                conversation_id=str(conversation_id),
                error=str(e),
            )
            raise StorageError("Unable to save response") from e

        if is_first_message:
            await self.conversation_service.set_title(conversation_id, title_from_message(message))

        logger.info(
            "chat_turn_completed",
            user_id=str(user_id),
            conversation_id=str(conversation_id),
            tokens_remaining=tokens_remaining,
        )

        return ChatReply(
            message=reply,
            tokens_remaining=tokens_remaining,
            conversation_id=conversation_id,
        )
