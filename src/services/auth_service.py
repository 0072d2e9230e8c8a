"""Session issuance: JWT access tokens and rotating refresh tokens.

Sessions are minted for an account that has already proven control of its
email address. No password is involved at any step.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import jwt
import structlog

from src.config import get_settings
from src.database import get_pool
from src.models.auth import LoginResponse, UserSummary
from src.models.user import User

logger = structlog.get_logger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 15
REFRESH_TOKEN_EXPIRE_DAYS = 7


def hash_refresh_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class AuthService:
    """Service for JWT management and refresh token lifecycle."""

    def __init__(self):
        self.settings = get_settings()

    def create_access_token(self, user_id: str, email: str) -> str:
        """Create a signed JWT access token.

        Roles are deliberately not embedded; admin checks query the
        role table on every request.

        Args:
            user_id: Account UUID as string (placed in 'sub' claim)
            email: Account email address

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        }
        token = jwt.encode(payload, self.settings.jwt_secret, algorithm=JWT_ALGORITHM)
        logger.debug(
            "access_token_created",
            user_id=user_id,
            expires_minutes=ACCESS_TOKEN_EXPIRE_MINUTES,
        )
        return token

    def validate_access_token(self, token: str) -> dict:
        """Decode and validate a JWT access token.

        Raises:
            ValueError: If the token is invalid, expired, or malformed
        """
        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[JWT_ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            raise ValueError("Access token has expired")
        except jwt.InvalidTokenError as e:
            raise ValueError(f"Invalid access token: {e}")

    async def create_refresh_token(self, user_id: UUID) -> tuple[str, str]:
        """Generate a refresh token and store only its hash.

        Returns:
            Tuple of (raw_token, token_hash)
        """
        raw_token = secrets.token_urlsafe(48)
        token_hash = hash_refresh_token(raw_token)
        token_id = uuid4()
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO refresh_tokens (id, user_id, token_hash, expires_at, created_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                token_id,
                user_id,
                token_hash,
                expires_at,
                now,
            )

        logger.info(
            "refresh_token_created",
            user_id=str(user_id),
            token_id=str(token_id),
            expires_at=expires_at.isoformat(),
        )

        return raw_token, token_hash

    async def issue_session(self, user: User, is_admin: bool = False) -> LoginResponse:
        """Mint an access + refresh token pair for a resolved account."""
        access_token = self.create_access_token(user_id=str(user.id), email=user.email)
        raw_refresh, _ = await self.create_refresh_token(user.id)

        logger.info("session_issued", user_id=str(user.id))

        return LoginResponse(
            access_token=access_token,
            refresh_token=raw_refresh,
            token_type="bearer",
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserSummary(
                id=user.id,
                email=user.email,
                is_admin=is_admin,
                created_at=user.created_at,
            ),
        )

    async def validate_refresh_token(self, raw_token: str) -> Optional[UUID]:
        """Look up a refresh token by hash.

        Returns:
            The user_id if the token is valid, not revoked, and not expired;
            None otherwise
        """
        token_hash = hash_refresh_token(raw_token)
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, expires_at, revoked_at
                FROM refresh_tokens
                WHERE token_hash = $1
                """,
                token_hash,
            )

        if row is None:
            logger.warning("refresh_token_not_found")
            return None

        if row["revoked_at"] is not None:
            logger.warning("refresh_token_revoked", user_id=str(row["user_id"]))
            return None

        if row["expires_at"] < now:
            logger.warning("refresh_token_expired", user_id=str(row["user_id"]))
            return None

        return row["user_id"]

    async def revoke_refresh_token(self, raw_token: str) -> None:
        """Revoke one refresh token (used when rotating)."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE token_hash = $2 AND revoked_at IS NULL
                """,
                datetime.now(timezone.utc),
                hash_refresh_token(raw_token),
            )

    async def revoke_all_user_tokens(self, user_id: UUID) -> None:
        """Revoke every refresh token of an account (logout everywhere)."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE user_id = $2 AND revoked_at IS NULL
                """,
                datetime.now(timezone.utc),
                user_id,
            )

        logger.info("all_refresh_tokens_revoked", user_id=str(user_id), result=result)
