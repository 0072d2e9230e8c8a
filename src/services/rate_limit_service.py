"""Per-identifier attempt tracking and temporary blocks for the OTP endpoints.

Each (identifier, endpoint) pair is tracked by its most recent row inside a
sliding window. The check and the later update are separate round-trips, so
two concurrent requests can both read "not blocked" and under-count. That is
accepted: this is abuse throttling, not a consistency boundary.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import structlog

from src.config import get_settings
from src.database import affected_rows, get_pool
from src.models.otp import RateLimitDecision, RateLimitEndpoint, RateLimitPolicy

logger = structlog.get_logger(__name__)


def build_policies() -> dict[RateLimitEndpoint, RateLimitPolicy]:
    """Rate limit policies keyed by endpoint, from settings."""
    settings = get_settings()
    return {
        RateLimitEndpoint.SEND_OTP: RateLimitPolicy(
            max_attempts=settings.otp_send_max_attempts,
            window=timedelta(minutes=settings.otp_send_window_minutes),
            block_duration=timedelta(minutes=settings.otp_send_block_minutes),
        ),
        RateLimitEndpoint.VERIFY_OTP: RateLimitPolicy(
            max_attempts=settings.otp_verify_max_attempts,
            window=timedelta(minutes=settings.otp_verify_window_minutes),
            block_duration=timedelta(minutes=settings.otp_verify_block_minutes),
        ),
    }


class RateLimitService:
    """Service for attempt counting, blocking and cleanup."""

    def __init__(self, policies: Optional[dict[RateLimitEndpoint, RateLimitPolicy]] = None):
        self.settings = get_settings()
        self.policies = policies or build_policies()

    def policy_for(self, endpoint: RateLimitEndpoint) -> RateLimitPolicy:
        return self.policies[RateLimitEndpoint(endpoint)]

    async def check(
        self,
        identifier: str,
        endpoint: RateLimitEndpoint,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        """Report whether the identifier is currently blocked on an endpoint.

        Args:
            identifier: Email address or client IP
            endpoint: Endpoint tag
            now: Reference time (defaults to current UTC time)

        Returns:
            Allowed, or Blocked with the latest ``blocked_until``
        """
        now = now or datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT blocked_until, attempt_count
                FROM rate_limit_tracking
                WHERE identifier = $1 AND endpoint = $2 AND blocked_until > $3
                ORDER BY blocked_until DESC
                LIMIT 1
                """,
                identifier,
                RateLimitEndpoint(endpoint).value,
                now,
            )

        if row is None:
            return RateLimitDecision.allow()

        logger.info(
            "rate_limit_blocked",
            identifier=identifier,
            endpoint=RateLimitEndpoint(endpoint).value,
            blocked_until=row["blocked_until"].isoformat(),
        )
        return RateLimitDecision.block(row["blocked_until"], row["attempt_count"])

    async def record_attempt(
        self,
        identifier: str,
        endpoint: RateLimitEndpoint,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        """Count one attempt and start a block once the policy is exceeded.

        Args:
            identifier: Email address or client IP
            endpoint: Endpoint tag
            now: Reference time (defaults to current UTC time)

        Returns:
            Blocked when this attempt pushed the count over the threshold,
            Allowed otherwise
        """
        now = now or datetime.now(timezone.utc)
        endpoint = RateLimitEndpoint(endpoint)
        policy = self.policy_for(endpoint)
        window_start = now - policy.window

        pool = await get_pool()

        async with pool.acquire() as conn:
            recent = await conn.fetchrow(
                """
                SELECT id, attempt_count
                FROM rate_limit_tracking
                WHERE identifier = $1 AND endpoint = $2 AND last_attempt_at >= $3
                ORDER BY last_attempt_at DESC
                LIMIT 1
                """,
                identifier,
                endpoint.value,
                window_start,
            )

            if recent is None:
                await conn.execute(
                    """
                    INSERT INTO rate_limit_tracking
                        (id, identifier, endpoint, attempt_count, first_attempt_at, last_attempt_at)
                    VALUES ($1, $2, $3, 1, $4, $4)
                    """,
                    uuid4(),
                    identifier,
                    endpoint.value,
                    now,
                )
                logger.debug("rate_limit_window_started", identifier=identifier, endpoint=endpoint.value)
                return RateLimitDecision.allow(attempt_count=1)

            attempt_count = recent["attempt_count"] + 1

            if attempt_count > policy.max_attempts:
                blocked_until = now + policy.block_duration
                await conn.execute(
                    """
                    UPDATE rate_limit_tracking
                    SET attempt_count = $1, last_attempt_at = $2, blocked_until = $3
                    WHERE id = $4
                    """,
                    attempt_count,
                    now,
                    blocked_until,
                    recent["id"],
                )
                logger.warning(
                    "rate_limit_block_started",
                    identifier=identifier,
                    endpoint=endpoint.value,
                    attempt_count=attempt_count,
                    blocked_until=blocked_until.isoformat(),
                )
                return RateLimitDecision.block(blocked_until, attempt_count)

            await conn.execute(
                """
                UPDATE rate_limit_tracking
                SET attempt_count = $1, last_attempt_at = $2
                WHERE id = $3
                """,
                attempt_count,
                now,
                recent["id"],
            )

        return RateLimitDecision.allow(attempt_count=attempt_count)

    async def clear(self, identifier: str, endpoint: RateLimitEndpoint) -> None:
        """Forget all attempts for the identifier on this endpoint."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM rate_limit_tracking WHERE identifier = $1 AND endpoint = $2",
                identifier,
                RateLimitEndpoint(endpoint).value,
            )

        logger.debug("rate_limit_cleared", identifier=identifier, endpoint=RateLimitEndpoint(endpoint).value)

    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete records whose last attempt is older than the retention period.

        Returns:
            Number of rows removed
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.settings.rate_limit_retention_hours)
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM rate_limit_tracking WHERE last_attempt_at < $1",
                cutoff,
            )

        removed = affected_rows(result)
        if removed:
            logger.info("rate_limit_records_cleaned", removed=removed)
        return removed

