"""Email one-time password issuance and verification.

Issuance: validate, rate limit, store a fresh 6-digit code (after purging
older ones for the address), then email it. Verification: rate limit, match
an unverified, unexpired code, consume it, and resolve or create the account
before minting a session.

Single use is enforced by the ``verified`` flag, not by deleting the row: a
replay of a consumed code finds no unverified match.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.config import get_settings
from src.database import affected_rows, get_pool
from src.models.auth import LoginResponse, is_valid_email, is_valid_otp
from src.models.otp import OtpRecord, RateLimitEndpoint
from src.models.user import Role
from src.services.auth_service import AuthService
from src.services.email_service import EmailService
from src.services.errors import (
    DeliveryError,
    InvalidInputError,
    InvalidOtpError,
    RateLimitedError,
    StorageError,
)
from src.services.rate_limit_service import RateLimitService
from src.services.role_service import RoleService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Uniform draw from 100000-999999 as a 6-character string."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def _row_to_otp(row) -> OtpRecord:
    return OtpRecord(
        id=row["id"],
        email=row["email"],
        otp=row["otp"],
        expires_at=row["expires_at"],
        verified=row["verified"],
        created_at=row["created_at"],
    )


class OtpStore:
    """Persistence for otp_verifications rows."""

    async def purge_email(self, email: str) -> int:
        """Delete every stored code for an address. Returns rows removed."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM otp_verifications WHERE email = $1",
                email,
            )

        return affected_rows(result)

    async def insert(self, email: str, code: str, expires_at: datetime, now: datetime) -> OtpRecord:
        otp_id = uuid4()
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO otp_verifications (id, email, otp, expires_at, verified, created_at)
                VALUES ($1, $2, $3, $4, FALSE, $5)
                """,
                otp_id,
                email,
                code,
                expires_at,
                now,
            )

        return OtpRecord(
            id=otp_id,
            email=email,
            otp=code,
            expires_at=expires_at,
            verified=False,
            created_at=now,
        )

    async def find_active(self, email: str, code: str, now: datetime) -> Optional[OtpRecord]:
        """Newest unverified, unexpired record matching email and code."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, email, otp, expires_at, verified, created_at
                FROM otp_verifications
                WHERE email = $1 AND otp = $2 AND verified = FALSE AND expires_at > $3
                ORDER BY created_at DESC
                LIMIT 1
                """,
                email,
                code,
                now,
            )

        return _row_to_otp(row) if row else None

    async def mark_verified(self, otp_id: UUID) -> bool:
        """Flip ``verified`` on an unverified record.

        Returns False when another request consumed it first.
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            consumed = await conn.fetchval(
                """
                UPDATE otp_verifications
                SET verified = TRUE
                WHERE id = $1 AND verified = FALSE
                RETURNING id
                """,
                otp_id,
            )

        return consumed is not None

    async def delete_expired(self, now: datetime) -> int:
        """Delete records of any address whose expiry has passed."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM otp_verifications WHERE expires_at < $1",
                now,
            )

        return affected_rows(result)


class OtpService:
    """Orchestrates the issue-otp and verify-otp flows."""

    def __init__(
        self,
        store: Optional[OtpStore] = None,
        rate_limits: Optional[RateLimitService] = None,
        email_service: Optional[EmailService] = None,
        user_service: Optional[UserService] = None,
        role_service: Optional[RoleService] = None,
        auth_service: Optional[AuthService] = None,
    ):
        self.settings = get_settings()
        self.store = store or OtpStore()
        self.rate_limits = rate_limits or RateLimitService()
        self.email_service = email_service or EmailService()
        self.user_service = user_service or UserService()
        self.role_service = role_service or RoleService()
        self.auth_service = auth_service or AuthService()

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.otp_ttl_minutes)

    async def issue(self, email: str, now: Optional[datetime] = None) -> OtpRecord:
        """Issue a fresh code for ``email`` and send it.

        Args:
            email: Address exactly as submitted (not case-normalized)
            now: Reference time (defaults to current UTC time)

        Returns:
            The stored OTP record

        Raises:
            InvalidInputError: Malformed address
            RateLimitedError: Address is blocked or just exceeded the limit
            StorageError: The code could not be stored
            DeliveryError: The email could not be sent (the stored code stays)
        """
        now = now or datetime.now(timezone.utc)

        if not email or not is_valid_email(email):
            raise InvalidInputError("Invalid email address")

        decision = await self.rate_limits.check(email, RateLimitEndpoint.SEND_OTP, now)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_minutes(now))

        decision = await self.rate_limits.record_attempt(email, RateLimitEndpoint.SEND_OTP, now)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_minutes(now))

        code = generate_otp()
        expires_at = now + self.ttl

        # Superseding older codes is best-effort and not atomic with the insert
        try:
            purged = await self.store.purge_email(email)
            if purged:
                logger.info("otp_superseded", email=email, purged=purged)
        except Exception as e:
            logger.warning("otp_purge_failed", email=email, error=str(e))

        try:
            record = await self.store.insert(email, code, expires_at, now)
        except Exception as e:
            logger.error("otp_storage_failed", email=email, error=str(e))
            raise StorageError("Failed to generate OTP") from e

        if not await self.email_service.send_otp_email(email, code):
            raise DeliveryError()

        logger.info(
            "otp_issued",
            email=email,
            otp_id=str(record.id),
            expires_at=expires_at.isoformat(),
        )

        await self._cleanup(now)
        return record

    async def verify(self, email: str, code: str, now: Optional[datetime] = None) -> LoginResponse:
        """Consume a code and return session credentials for the address.

        Args:
            email: Address the code was sent to
            code: Submitted 6-digit code
            now: Reference time (defaults to current UTC time)

        Returns:
            LoginResponse with the token pair and the resolved account

        Raises:
            InvalidInputError: Missing or malformed email or code
            RateLimitedError: Address is blocked, or this failure started a block
            InvalidOtpError: No usable code matched (wrong, expired or used)
        """
        now = now or datetime.now(timezone.utc)

        if not email or not code or not is_valid_email(email) or not is_valid_otp(code):
            raise InvalidInputError("Email and a 6-digit OTP are required")

        decision = await self.rate_limits.check(email, RateLimitEndpoint.VERIFY_OTP, now)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_minutes(now))

        expired = await self.store.delete_expired(now)
        if expired:
            logger.debug("otp_expired_removed", removed=expired)

        record = await self.store.find_active(email, code, now)
        if record is None or not await self.store.mark_verified(record.id):
            decision = await self.rate_limits.record_attempt(email, RateLimitEndpoint.VERIFY_OTP, now)
            logger.info(
                "otp_verification_failed",
                email=email,
                attempt_count=decision.attempt_count,
                blocked=not decision.allowed,
            )
            if not decision.allowed:
                raise RateLimitedError(decision.retry_after_minutes(now))
            raise InvalidOtpError()

        await self.rate_limits.clear(email, RateLimitEndpoint.VERIFY_OTP)

        user, created = await self.user_service.resolve_or_create(email)
        is_admin = await self.role_service.has_role(user.id, Role.ADMIN)
        session = await self.auth_service.issue_session(user, is_admin=is_admin)

        logger.info(
            "otp_verified",
            email=email,
            otp_id=str(record.id),
            user_id=str(user.id),
            new_account=created,
        )

        await self._cleanup(now)
        return session

    async def cleanup(self, now: Optional[datetime] = None) -> tuple[int, int]:
        """Remove expired codes and stale rate limit rows.

        Returns:
            Tuple of (expired_codes_removed, rate_limit_rows_removed)
        """
        now = now or datetime.now(timezone.utc)
        expired = await self.store.delete_expired(now)
        stale = await self.rate_limits.cleanup(now)
        return expired, stale

    async def _cleanup(self, now: datetime) -> None:
        """Opportunistic rate limit cleanup at the end of a successful flow."""
        try:
            await self.rate_limits.cleanup(now)
        except Exception as e:
            logger.warning("rate_limit_cleanup_failed", error=str(e))
