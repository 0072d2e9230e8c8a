"""Role assignments and capability checks."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog

from src.database import affected_rows, get_pool
from src.models.user import Role

logger = structlog.get_logger(__name__)


class RoleService:
    """Service for the user_roles table.

    Checks always hit the database; nothing is cached, so a revoked role
    takes effect on the next request.
    """

    async def has_role(self, user_id: UUID, role: Role) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            found = await conn.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM user_roles WHERE user_id = $1 AND role = $2
                )
                """,
                user_id,
                Role(role).value,
            )

        return bool(found)

    async def list_roles(self, user_id: UUID) -> list[Role]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT role::text AS role FROM user_roles WHERE user_id = $1 ORDER BY role",
                user_id,
            )

        return [Role(row["role"]) for row in rows]

    async def assign_role(self, user_id: UUID, role: Role) -> bool:
        """Grant a role. Returns False when the account already had it."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                INSERT INTO user_roles (id, user_id, role, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_id, role) DO NOTHING
                """,
                uuid4(),
                user_id,
                Role(role).value,
                datetime.now(timezone.utc),
            )

        granted = affected_rows(result) > 0
        logger.info("role_assigned", user_id=str(user_id), role=Role(role).value, granted=granted)
        return granted

    async def revoke_role(self, user_id: UUID, role: Role) -> bool:
        """Remove a role. Returns False when the account did not have it."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM user_roles WHERE user_id = $1 AND role = $2",
                user_id,
                Role(role).value,
            )

        revoked = affected_rows(result) > 0
        logger.info("role_revoked", user_id=str(user_id), role=Role(role).value, revoked=revoked)
        return revoked
