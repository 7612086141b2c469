"""User repository for Cadenza backend.

Provides data access methods for User entities, including the atomic usage
counter updates behind the entitlement gate.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.core.timezone import utcnow
from cadenza.models.user import User

USAGE_COUNTERS = (
    "generations_used_this_month",
    "image_generations_used_this_month",
    "video_generations_used_this_month",
)


class UserRepository:
    """Repository for User entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == email.lower())  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription_id(self, subscription_id: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.stripe_subscription_id == subscription_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_customer_id(self, customer_id: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.stripe_customer_id == customer_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """Persist new user to database.

        Returns:
            Persisted user with generated ID
        """
        user.email = user.email.lower()
        self.session.add(user)
        await self.session.flush()
        return user

    async def update_fields(self, user: User, **fields: Any) -> User:
        """Assign fields on user and bump updated_at."""
        for name, value in fields.items():
            setattr(user, name, value)
        user.updated_at = utcnow()
        self.session.add(user)
        await self.session.flush()
        return user

    async def increment_usage_if_below(self, user_id: UUID, counter: str, limit: int) -> bool:
        """Atomically reserve one unit of a monthly usage counter.

        Single statement, no read-then-write:
            UPDATE users SET <counter> = <counter> + 1
            WHERE id = :user_id AND <counter> < :limit

        Returns:
            True if a unit was reserved, False if the counter already reached limit
        """
        column = self._counter_column(counter)
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, column < limit)  # type: ignore[arg-type]
            .values({column: column + 1, User.updated_at: utcnow()})
            .execution_options(synchronize_session="evaluate")
        )
        await self.session.flush()
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def decrement_usage(self, user_id: UUID, counter: str) -> bool:
        """Atomically give back one unit of a usage counter (never below zero).

        Returns:
            True if the counter was decremented
        """
        column = self._counter_column(counter)
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, column > 0)  # type: ignore[arg-type]
            .values({column: column - 1, User.updated_at: utcnow()})
            .execution_options(synchronize_session="evaluate")
        )
        await self.session.flush()
        return result.rowcount == 1  # type: ignore[attr-defined]

    @staticmethod
    def _counter_column(counter: str) -> Any:
        if counter not in USAGE_COUNTERS:
            raise ValueError(f"Unknown usage counter: {counter}")
        return getattr(User, counter)
