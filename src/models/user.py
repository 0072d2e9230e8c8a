"""Account, profile and role models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Closed set of assignable roles."""

    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


class User(BaseModel):
    """An account, identified by its email address."""

    id: UUID
    email: str
    email_confirmed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_verified(self) -> bool:
        return self.email_confirmed_at is not None


class Profile(BaseModel):
    """Per-account usage data. ``tokens`` is the metered chat balance."""

    user_id: UUID
    email: str
    tokens: int
    created_at: datetime
    updated_at: datetime


class RefreshToken(BaseModel):
    """A refresh token for JWT rotation."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime


class AdminUserView(BaseModel):
    """Row of the admin accounts table."""

    id: UUID
    email: str
    tokens: int
    is_verified: bool
    roles: list[Role] = []
    created_at: datetime
