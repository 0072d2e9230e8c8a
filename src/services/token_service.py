"""Token ledger: metered chat usage against a per-account balance.

The balance lives in ``profiles.tokens``. Every change is a single
conditional UPDATE so concurrent requests for the same account can never
overdraw it; there is no read-then-write anywhere in this module.
"""

from typing import Optional
from uuid import UUID

import structlog

from src.database import get_pool
from src.services.errors import InsufficientBalanceError, InvalidInputError

logger = structlog.get_logger(__name__)

# Starting balance for every new profile. Account provisioning reads it from here.
DEFAULT_TOKEN_BALANCE = 10000


def count_words(text: str) -> int:
    """Cost of a piece of text: its whitespace-separated word count."""
    return len(text.split())


class TokenService:
    """Service for balance reads, guarded decrements and post-hoc charges."""

    async def get_balance(self, user_id: UUID) -> Optional[int]:
        """Current balance, or None when the account has no profile."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT tokens FROM profiles WHERE user_id = $1",
                user_id,
            )

    async def decrement(self, user_id: UUID, amount: int) -> int:
        """Atomically subtract ``amount`` if the balance covers it.

        Args:
            user_id: Account whose balance is charged
            amount: Non-negative number of tokens

        Returns:
            The new balance

        Raises:
            InvalidInputError: If amount is negative
            InsufficientBalanceError: If the balance is below amount (nothing is changed)
        """
        if amount < 0:
            raise InvalidInputError("Token amount must not be negative")

        pool = await get_pool()

        async with pool.acquire() as conn:
            new_balance = await conn.fetchval(
                """
                UPDATE profiles
                SET tokens = tokens - $2, updated_at = NOW()
                WHERE user_id = $1 AND tokens >= $2
                RETURNING tokens
                """,
                user_id,
                amount,
            )

        if new_balance is None:
            logger.info("tokens_insufficient", user_id=str(user_id), amount=amount)
            raise InsufficientBalanceError()

        logger.info(
            "tokens_decremented",
            user_id=str(user_id),
            amount=amount,
            balance=new_balance,
        )
        return new_balance

    async def settle(self, user_id: UUID, amount: int) -> Optional[int]:
        """Charge for work that already happened, without a balance precondition.

        The charge is applied even when the balance cannot cover it; the
        balance is floored at zero instead of going negative.

        Returns:
            The new balance, or None when the account has no profile
        """
        if amount < 0:
            raise InvalidInputError("Token amount must not be negative")

        pool = await get_pool()

        async with pool.acquire() as conn:
            new_balance = await conn.fetchval(
                """
                UPDATE profiles
                SET tokens = GREATEST(tokens - $2, 0), updated_at = NOW()
                WHERE user_id = $1
                RETURNING tokens
                """,
                user_id,
                amount,
            )

        if new_balance is None:
            logger.warning("tokens_settle_no_profile", user_id=str(user_id), amount=amount)
        else:
            logger.info(
                "tokens_settled",
                user_id=str(user_id),
                amount=amount,
                balance=new_balance,
            )
        return new_balance
