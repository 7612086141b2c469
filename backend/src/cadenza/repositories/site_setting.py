"""SiteSetting repository for Cadenza backend.

Provides data access methods for the SiteSetting key-value store.
"""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.core.timezone import utcnow
from cadenza.models.site_setting import SiteSetting


class SiteSettingRepository:
    """Repository for SiteSetting key-value store.

    Provides UPSERT behavior (INSERT ... ON CONFLICT DO UPDATE) for setting values.
    Values are stored as JSON and automatically serialized/deserialized.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_value(self, key: str) -> Any | None:
        """Retrieve value for a key.

        Args:
            key: Setting key (e.g., "stripe_webhook_secret")

        Returns:
            Deserialized value if found, None otherwise
        """
        result = await self.session.execute(select(SiteSetting).where(SiteSetting.key == key))  # type: ignore[arg-type]
        setting = result.scalar_one_or_none()
        return setting.value if setting else None

    async def set_value(self, key: str, value: Any) -> None:
        """Set value for a key (UPSERT).

        Query explanation:
        - INSERT: Try to insert new row
        - ON CONFLICT (key): If key already exists
        - DO UPDATE: Update existing row with new value and timestamp

        PostgreSQL and SQLite share the ON CONFLICT syntax; the dialect's
        insert construct is picked from the bound engine.

        Args:
            key: Setting key (alphanumeric + underscores only)
            value: Setting value (must be JSON-serializable)
        """
        if not key.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")
        now = utcnow()
        insert = pg_insert if self.session.bind.dialect.name == "postgresql" else sqlite_insert
        stmt = insert(SiteSetting).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def delete_value(self, key: str) -> bool:
        """Delete setting for a key (idempotent).

        Returns:
            True if key was deleted, False if key did not exist
        """
        result = await self.session.execute(delete(SiteSetting).where(SiteSetting.key == key))  # type: ignore[arg-type]
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]
