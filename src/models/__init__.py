"""Models package exports."""

from src.models.chat import ChatReply, ChatRequest, Conversation, Message, MessageRole
from src.models.otp import OtpRecord, RateLimitDecision, RateLimitEndpoint, RateLimitPolicy
from src.models.response import ErrorResponse
from src.models.user import AdminUserView, Profile, Role, User

__all__ = [
    "AdminUserView",
    "ChatReply",
    "ChatRequest",
    "Conversation",
    "ErrorResponse",
    "Message",
    "MessageRole",
    "OtpRecord",
    "Profile",
    "RateLimitDecision",
    "RateLimitEndpoint",
    "RateLimitPolicy",
    "Role",
    "User",
]
