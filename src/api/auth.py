"""Authentication API endpoints: email OTP login and session management."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from src.api.dependencies import get_current_user, throttle_otp_by_ip
from src.models.auth import (
    LoginResponse,
    OtpSendRequest,
    OtpSendResponse,
    OtpVerifyRequest,
    RefreshRequest,
    UserSummary,
)
from src.models.user import Role, User
from src.services.auth_service import AuthService
from src.services.otp_service import OtpService
from src.services.role_service import RoleService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/otp/send")
async def send_otp(request: OtpSendRequest, http_request: Request) -> OtpSendResponse:
    """Email a 6-digit one-time password to the given address.

    Raises:
        400: Invalid email address
        429: Too many requests for this address (carries retry-after)
        500: The code could not be stored or the email could not be sent
    """
    await throttle_otp_by_ip(http_request)

    otp_service = OtpService()
    await otp_service.issue(request.email)
    return OtpSendResponse(expires_in=int(otp_service.ttl.total_seconds()))


@router.post("/otp/verify")
async def verify_otp(request: OtpVerifyRequest, http_request: Request) -> LoginResponse:
    """Exchange a valid one-time password for session credentials.

    New addresses get an account (with the starting token balance) on
    their first successful verification.

    Raises:
        400: Malformed input, or invalid / expired / already used code
        429: Too many failed attempts (carries retry-after)
    """
    await throttle_otp_by_ip(http_request)

    otp_service = OtpService()
    return await otp_service.verify(request.email, request.otp)


@router.post("/refresh")
async def refresh(request: RefreshRequest) -> LoginResponse:
    """Rotate a refresh token into a new token pair.

    Raises:
        HTTPException 401: If refresh token is invalid, expired, or revoked
    """
    auth_service = AuthService()
    user_service = UserService()
    role_service = RoleService()

    user_id = await auth_service.validate_refresh_token(request.refresh_token)

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    user = await user_service.get_by_id(user_id)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    await auth_service.revoke_refresh_token(request.refresh_token)
    is_admin = await role_service.has_role(user.id, Role.ADMIN)
    return await auth_service.issue_session(user, is_admin=is_admin)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(current_user: User = Depends(get_current_user)) -> None:
    """Revoke every refresh token of the caller."""
    auth_service = AuthService()
    await auth_service.revoke_all_user_tokens(current_user.id)
    logger.info("user_logged_out", user_id=str(current_user.id))


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Current authenticated account."""
    role_service = RoleService()
    return UserSummary(
        id=current_user.id,
        email=current_user.email,
        is_admin=await role_service.has_role(current_user.id, Role.ADMIN),
        created_at=current_user.created_at,
    )
