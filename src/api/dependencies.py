"""FastAPI dependencies for authentication, authorization and throttling."""

from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.models.user import Role, User
from src.services.auth_service import AuthService
from src.services.errors import RateLimitedError
from src.services.redis_service import RedisService
from src.services.role_service import RoleService
from src.services.user_service import UserService

bearer_scheme = HTTPBearer()


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> User:
    """Extract and validate the current account from a JWT Bearer token.

    Raises:
        HTTPException 401: If token is invalid, expired, or account not found
    """
    auth_service = AuthService()
    try:
        payload = auth_service.validate_access_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    try:
        user_uuid = UUID(user_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_service = UserService()
    user = await user_service.get_by_id(user_uuid)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require the admin role, looked up fresh on every request.

    Raises:
        HTTPException 403: If the account lacks the admin role
    """
    role_service = RoleService()
    if not await role_service.has_role(current_user.id, Role.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def throttle_otp_by_ip(request: Request) -> None:
    """Per-IP burst limit for the OTP endpoints (Redis; allows if Redis is down).

    Called from the handlers once the request body has validated, so
    malformed requests do not spend the client's budget.

    Raises:
        RateLimitedError: When the client exceeded the per-minute budget
    """
    redis_service = RedisService()
    allowed, _ = await redis_service.check_rate_limit(f"otp:{client_ip(request)}")
    if not allowed:
        raise RateLimitedError(1, "Too many requests. Please try again in a minute.")
