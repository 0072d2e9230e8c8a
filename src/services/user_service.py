"""Account provisioning and lookup."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from src.database import get_pool
from src.models.user import AdminUserView, Profile, Role, User
from src.services.token_service import DEFAULT_TOKEN_BALANCE

logger = structlog.get_logger(__name__)

_USER_COLUMNS = "id, email, email_confirmed_at, created_at, updated_at"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        email_confirmed_at=row["email_confirmed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for account and profile CRUD operations."""

    async def get_by_email(self, email: str) -> Optional[User]:
        """Find an account by its exact email address."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = $1",
                email,
            )

        return _row_to_user(row) if row else None

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        return _row_to_user(row) if row else None

    async def create_user(self, email: str) -> User:
        """Create an account with a confirmed email and its profile.

        The account row and the profile row are written in one transaction,
        so an account never exists without a balance.

        Args:
            email: Address proven by a verified one-time code

        Returns:
            Created User model
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO users (id, email, email_confirmed_at, created_at, updated_at)
                    VALUES ($1, $2, $3, $3, $3)
                    """,
                    user_id,
                    email,
                    now,
                )
                await conn.execute(
                    """
                    INSERT INTO profiles (user_id, email, tokens, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $4)
                    """,
                    user_id,
                    email,
                    DEFAULT_TOKEN_BALANCE,
                    now,
                )

        logger.info(
            "user_created",
            user_id=str(user_id),
            email=email,
            tokens=DEFAULT_TOKEN_BALANCE,
        )

        return User(
            id=user_id,
            email=email,
            email_confirmed_at=now,
            created_at=now,
            updated_at=now,
        )

    async def resolve_or_create(self, email: str) -> tuple[User, bool]:
        """Return the account for ``email``, creating it when absent.

        Returns:
            Tuple of (user, created)
        """
        existing = await self.get_by_email(email)
        if existing is not None:
            return existing, False

        try:
            return await self.create_user(email), True
        except asyncpg.UniqueViolationError:
            # A concurrent verification for the same address won the insert
            logger.info("user_create_raced", email=email)
            existing = await self.get_by_email(email)
            if existing is None:
                raise
            return existing, False

    async def get_profile(self, user_id: UUID) -> Optional[Profile]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, email, tokens, created_at, updated_at
                FROM profiles
                WHERE user_id = $1
                """,
                user_id,
            )

        if row is None:
            return None

        return Profile(
            user_id=row["user_id"],
            email=row["email"],
            tokens=row["tokens"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def list_users_with_profiles(self) -> list[AdminUserView]:
        """All accounts with balance, verification state and roles, newest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT u.id, u.email, u.email_confirmed_at, u.created_at,
                       COALESCE(p.tokens, 0) AS tokens,
                       COALESCE(
                           ARRAY_AGG(r.role::text ORDER BY r.role) FILTER (WHERE r.role IS NOT NULL),
                           '{}'
                       ) AS roles
                FROM users u
                LEFT JOIN profiles p ON p.user_id = u.id
                LEFT JOIN user_roles r ON r.user_id = u.id
                GROUP BY u.id, p.tokens
                ORDER BY u.created_at DESC
                """
            )

        return [
            AdminUserView(
                id=row["id"],
                email=row["email"],
                tokens=row["tokens"],
                is_verified=row["email_confirmed_at"] is not None,
                roles=[Role(r) for r in row["roles"]],
                created_at=row["created_at"],
            )
            for row in rows
        ]
