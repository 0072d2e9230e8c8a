"""One-time password and rate limit records."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.services.errors import minutes_until


class RateLimitEndpoint(str, Enum):
    """Endpoint tags that attempts are tracked under."""

    SEND_OTP = "send-otp"
    VERIFY_OTP = "verify-otp"


class OtpRecord(BaseModel):
    """A stored one-time code.

    Lifecycle: issued -> verified (terminal), expired (never matched again)
    or superseded (deleted by the next issuance for the same email).
    """

    id: UUID
    email: str
    otp: str = Field(min_length=6, max_length=6)
    expires_at: datetime
    verified: bool = False
    created_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return not self.verified and self.expires_at > now


@dataclass(frozen=True)
class RateLimitPolicy:
    """Threshold for one endpoint.

    An attempt that brings the count within ``window`` above
    ``max_attempts`` starts a block of ``block_duration``.
    """

    max_attempts: int
    window: timedelta
    block_duration: timedelta


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check or recorded attempt."""

    allowed: bool
    blocked_until: Optional[datetime] = None
    attempt_count: int = 0

    @classmethod
    def allow(cls, attempt_count: int = 0) -> "RateLimitDecision":
        return cls(allowed=True, attempt_count=attempt_count)

    @classmethod
    def block(cls, blocked_until: datetime, attempt_count: int = 0) -> "RateLimitDecision":
        return cls(allowed=False, blocked_until=blocked_until, attempt_count=attempt_count)

    def retry_after_minutes(self, now: datetime) -> int:
        """Remaining block length for user messaging, rounded up to minutes."""
        if self.blocked_until is None:
            return 0
        return minutes_until(self.blocked_until, now)
