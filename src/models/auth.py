"""Auth request and response models with validation."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.models.user import Role

# local@domain.tld shape; intentionally loose
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_PATTERN = re.compile(r"^[0-9]{6}$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.fullmatch(value))


def is_valid_otp(value: str) -> bool:
    return bool(OTP_PATTERN.fullmatch(value))


class OtpSendRequest(BaseModel):
    """Request a one-time code for an email address.

    The address is kept exactly as submitted; it is not lower-cased.
    """

    email: str = Field(..., max_length=320)

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        """Ensure the address looks like local@domain.tld."""
        v = v.strip()
        if not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v


class OtpSendResponse(BaseModel):
    """Acknowledgement that a code was issued and sent."""

    success: bool = True
    message: str = "OTP sent successfully"
    expires_in: int = Field(ge=1, description="Code lifetime in seconds")


class OtpVerifyRequest(BaseModel):
    """Submit a code for an email address.

    Attributes:
        email: Address the code was sent to
        otp: The 6-digit code
    """

    email: str = Field(..., max_length=320)
    otp: str

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("otp")
    @classmethod
    def otp_digits(cls, v: str) -> str:
        """Ensure the code is exactly six ASCII digits."""
        v = v.strip()
        if not is_valid_otp(v):
            raise ValueError("OTP must be exactly 6 digits")
        return v


class UserSummary(BaseModel):
    """Compact account representation for API responses."""

    id: UUID
    email: str
    is_admin: bool = False
    created_at: datetime


class LoginResponse(BaseModel):
    """Session credentials issued after a successful verification.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived token for obtaining new access tokens
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        user: Summary of the authenticated account
    """

    message: str = "OTP verified successfully"
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    user: UserSummary


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str


class RoleRequest(BaseModel):
    """Admin request to grant a role."""

    role: Role
