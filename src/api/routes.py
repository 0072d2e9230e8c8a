"""API route definitions for chat, profile and health endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
import structlog

from src.api.dependencies import get_current_user
from src.models.chat import ChatReply, ChatRequest, ProfileResponse
from src.models.user import Role, User
from src.services.chat_service import ChatService
from src.services.errors import NotFoundError
from src.services.role_service import RoleService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_chat_service() -> ChatService:
    """Get chat service instance."""
    return ChatService()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint with database and Redis status."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        from src.database import health_check as db_health_check
        db_healthy = await db_health_check()
        health_status["database"] = "healthy" if db_healthy else "unhealthy"
    except Exception:
        health_status["database"] = "unavailable"

    try:
        from src.services.redis_service import get_redis
        redis_client = await get_redis()
        health_status["redis"] = "healthy" if redis_client else "unavailable"
    except Exception:
        health_status["redis"] = "unavailable"

    return health_status


@router.post("/chat")
async def chat(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatReply:
    """Send one message in a conversation and get the assistant's reply.

    The message's word count is charged before the model is called; the
    reply's word count is charged afterwards.

    Raises:
        402: Balance does not cover the message
        403: Conversation belongs to another account
        404: Conversation not found
        503: AI service unavailable
    """
    return await chat_service.complete_turn(
        user_id=current_user.id,
        conversation_id=request.conversation_id,
        message=request.message,
    )


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)) -> ProfileResponse:
    """The caller's email and token balance."""
    user_service = UserService()
    role_service = RoleService()

    profile = await user_service.get_profile(current_user.id)
    if profile is None:
        raise NotFoundError("Profile not found")

    return ProfileResponse(
        id=current_user.id,
        email=profile.email,
        tokens=profile.tokens,
        is_admin=await role_service.has_role(current_user.id, Role.ADMIN),
    )
