"""Service-level error taxonomy.

Every error carries a status code, a short machine-readable ``error`` tag
and a user-safe ``message``. Internal details (SQL errors, SMTP replies,
provider responses) are logged where they happen and never placed in the
message.
"""

import math
from datetime import datetime
from typing import Optional


class ServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code: int = 500
    error: str = "internal_error"
    default_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(ServiceError):
    """Malformed input, rejected before any store interaction."""

    status_code = 400
    error = "invalid_input"
    default_message = "Invalid request"


class AuthorizationError(ServiceError):
    """Ownership or role mismatch."""

    status_code = 403
    error = "forbidden"
    default_message = "Access denied"


class NotFoundError(ServiceError):
    status_code = 404
    error = "not_found"
    default_message = "Resource not found"


class InvalidOtpError(ServiceError):
    """Wrong, expired or already used code. Deliberately does not say which."""

    status_code = 400
    error = "invalid_otp"
    default_message = "Invalid or expired OTP"


class RateLimitedError(ServiceError):
    """Too many attempts; carries the remaining block length."""

    status_code = 429
    error = "rate_limited"

    def __init__(self, retry_after_minutes: int, message: Optional[str] = None):
        self.retry_after_minutes = retry_after_minutes
        super().__init__(
            message
            or f"Too many attempts. Please try again in {retry_after_minutes} minutes."
        )

    @property
    def retry_after_seconds(self) -> int:
        return self.retry_after_minutes * 60


class InsufficientBalanceError(ServiceError):
    """Not enough tokens for the requested charge. Expected, not a crash."""

    status_code = 402
    error = "insufficient_tokens"
    default_message = "Insufficient tokens. Please upgrade your account."


class UpstreamUnavailableError(ServiceError):
    """Mail, model or auth collaborator failed or timed out."""

    status_code = 503
    error = "upstream_unavailable"
    default_message = "Service temporarily unavailable"


class DeliveryError(UpstreamUnavailableError):
    status_code = 500
    error = "delivery_error"
    default_message = "Failed to send OTP email"


class StorageError(ServiceError):
    status_code = 500
    error = "storage_error"
    default_message = "Unable to process request"


def minutes_until(moment: datetime, now: datetime) -> int:
    """Whole minutes from ``now`` until ``moment``, rounded up, never below 1."""
    remaining = (moment - now).total_seconds()
    return max(1, math.ceil(remaining / 60))
